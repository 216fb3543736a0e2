"""Schemas for AIS position checks and the manual check endpoint."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PositionCheckRead(BaseModel):
    check_id: int
    vessel_id: int
    check_time: datetime
    is_moving: bool
    speed_knots: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    reported_at: Optional[datetime] = None
    api_source: Optional[str] = None

    model_config = {"from_attributes": True}


class ManualCheckResponse(BaseModel):
    check_id: int
    is_moving: bool
    speed_knots: Optional[float] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp_trusted: bool
    sea_time_entry_created: bool
    sea_time_entry_closed: bool
    entry_id: Optional[int] = None
    underway_hours_24h: float


class AISStatusResponse(BaseModel):
    is_moving: bool
    current_check: Optional[PositionCheckRead] = None
    recent_checks: list[PositionCheckRead]
