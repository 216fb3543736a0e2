"""Vessel entity: a user's registered vessel, looked up at the AIS provider by MMSI."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seatime.models.base import Base


class Vessel(Base):
    __tablename__ = "vessels"
    __table_args__ = (
        # Same MMSI may be tracked by several users, but only once per user
        UniqueConstraint("user_id", "mmsi", name="uq_vessels_user_mmsi"),
    )

    vessel_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    mmsi: Mapped[str] = mapped_column(String(9), nullable=False, index=True)
    vessel_name: Mapped[str] = mapped_column(String(255), nullable=False)
    callsign: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    flag: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    vessel_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=func.now(), onupdate=func.now()
    )

    # Relationships
    tracking_tasks: Mapped[list] = relationship("TrackingTask", back_populates="vessel", cascade="all, delete-orphan")
    position_checks: Mapped[list] = relationship("PositionCheck", back_populates="vessel", cascade="all, delete-orphan")
    sea_time_entries: Mapped[list] = relationship("SeaTimeEntry", back_populates="vessel", cascade="all, delete-orphan")
    debug_logs: Mapped[list] = relationship("AISDebugLog", back_populates="vessel", cascade="all, delete-orphan")
