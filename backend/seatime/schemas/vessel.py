"""Pydantic schemas for Vessel entity: used by FastAPI for request/response typing."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class VesselBase(BaseModel):
    mmsi: str
    vessel_name: str
    callsign: Optional[str] = None
    flag: Optional[str] = None
    vessel_type: Optional[str] = None

    @field_validator("mmsi")
    @classmethod
    def mmsi_must_be_9_digits(cls, v: str) -> str:
        v = v.strip()
        if not v.isdigit() or len(v) != 9:
            raise ValueError("MMSI must be exactly 9 digits")
        return v

    @field_validator("vessel_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("vessel_name must not be blank")
        return v.strip()


class VesselCreate(VesselBase):
    is_active: bool = False


class VesselRead(VesselBase):
    vessel_id: int
    user_id: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
