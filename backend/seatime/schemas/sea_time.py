"""Schemas for sea-time entries."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from seatime.models.base import SeaTimeStatusEnum, ServiceTypeEnum
from seatime.utils.clock import to_naive_utc


class SeaTimeEntryRead(BaseModel):
    entry_id: int
    vessel_id: int
    user_id: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_hours: Optional[float] = None
    sea_days: Optional[int] = None
    status: SeaTimeStatusEnum
    service_type: ServiceTypeEnum
    start_latitude: Optional[float] = None
    start_longitude: Optional[float] = None
    end_latitude: Optional[float] = None
    end_longitude: Optional[float] = None
    distance_nm: Optional[float] = None
    mca_compliant: Optional[bool] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class LogbookVessel(BaseModel):
    vessel_id: int
    mmsi: str
    vessel_name: str
    flag: Optional[str] = None
    vessel_type: Optional[str] = None
    is_active: bool

    model_config = {"from_attributes": True}


class LogbookEntryRead(SeaTimeEntryRead):
    vessel: Optional[LogbookVessel] = None


class ManualEntryCreate(BaseModel):
    """A sea-time entry typed in by the user rather than inferred from AIS."""

    vessel_id: int
    start_time: datetime
    end_time: Optional[datetime] = None
    service_type: ServiceTypeEnum = ServiceTypeEnum.ACTUAL_SEA_SERVICE
    notes: Optional[str] = Field(default=None, max_length=2000)
    start_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    start_longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    end_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    end_longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def end_after_start(self) -> "ManualEntryCreate":
        if self.end_time is not None and to_naive_utc(self.end_time) <= to_naive_utc(self.start_time):
            raise ValueError("end_time must be after start_time")
        return self
