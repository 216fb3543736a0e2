"""SeaTimeEntry entity: the user-facing sea service record.

Scheduler-created rows are inserted once as pending and never edited by the
scheduler; only the user moves them to confirmed/rejected.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, Float, String, Boolean, Text, DateTime, ForeignKey, Enum as SAEnum, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seatime.models.base import Base, SeaTimeStatusEnum, ServiceTypeEnum, enum_values


class SeaTimeEntry(Base):
    __tablename__ = "sea_time_entries"
    __table_args__ = (
        Index("ix_sea_time_entries_user_start", "user_id", "start_time"),
    )

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    vessel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vessels.vessel_id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sea_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        SAEnum(SeaTimeStatusEnum, values_callable=enum_values), nullable=False, default=SeaTimeStatusEnum.PENDING, index=True
    )
    service_type: Mapped[str] = mapped_column(
        SAEnum(ServiceTypeEnum, values_callable=enum_values), nullable=False, default=ServiceTypeEnum.ACTUAL_SEA_SERVICE
    )
    start_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    start_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    end_longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    distance_nm: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # True when the 4-hour underway rule was met at detection time
    mca_compliant: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())

    vessel: Mapped["Vessel"] = relationship("Vessel", back_populates="sea_time_entries")

    @property
    def is_open(self) -> bool:
        return self.end_time is None
