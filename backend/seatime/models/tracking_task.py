"""TrackingTask entity: per-vessel periodic AIS poll bookkeeping.

Only the scheduler advances last_run/next_run; users only toggle is_active.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, UniqueConstraint, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seatime.models.base import Base, TaskTypeEnum


class TrackingTask(Base):
    __tablename__ = "tracking_tasks"
    __table_args__ = (
        UniqueConstraint("vessel_id", "task_type", name="uq_tracking_tasks_vessel_type"),
        CheckConstraint("interval_hours > 0", name="ck_tracking_interval_positive"),
        Index("ix_tracking_tasks_due", "is_active", "next_run"),
    )

    task_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    vessel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("vessels.vessel_id", ondelete="CASCADE"), nullable=False, index=True
    )
    task_type: Mapped[str] = mapped_column(String(50), nullable=False, default=TaskTypeEnum.AIS_CHECK.value)
    interval_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    last_run: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    next_run: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=func.now())

    vessel: Mapped["Vessel"] = relationship("Vessel", back_populates="tracking_tasks")
