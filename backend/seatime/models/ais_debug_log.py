"""AISDebugLog entity: one row per provider poll attempt, for diagnostics.

The API key is masked before it is written to api_url.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from seatime.models.base import Base


class AISDebugLog(Base):
    __tablename__ = "ais_debug_logs"
    __table_args__ = (
        Index("ix_ais_debug_logs_vessel_time", "vessel_id", "request_time"),
    )

    log_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    vessel_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("vessels.vessel_id", ondelete="CASCADE"), nullable=True
    )
    mmsi: Mapped[str] = mapped_column(String(9), nullable=False, index=True)
    api_url: Mapped[str] = mapped_column(String(500), nullable=False)
    request_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    response_status: Mapped[str] = mapped_column(String(20), nullable=False)
    response_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    authentication_status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    api_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    vessel: Mapped[Optional["Vessel"]] = relationship("Vessel", back_populates="debug_logs")
