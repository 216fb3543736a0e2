"""PositionCheck entity: one immutable row per successful AIS poll."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, Float, String, Boolean, DateTime, ForeignKey, CheckConstraint, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seatime.models.base import Base


class PositionCheck(Base):
    __tablename__ = "position_checks"
    __table_args__ = (
        CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_check_lat_bounds"),
        CheckConstraint("longitude IS NULL OR (longitude >= -180 AND longitude <= 180)", name="ck_check_lon_bounds"),
        Index("ix_position_checks_vessel_time", "vessel_id", "check_time"),
    )

    check_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    vessel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vessels.vessel_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Wall-clock time of the poll; the analyzer windows on this, not on reported_at
    check_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_moving: Mapped[bool] = mapped_column(Boolean, nullable=False)
    speed_knots: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # Provider position timestamp: only stored when it came from the payload
    reported_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    api_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, default="myshiptracking")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())

    vessel: Mapped["Vessel"] = relationship("Vessel", back_populates="position_checks")

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None
