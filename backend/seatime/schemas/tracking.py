"""Schemas for tracking tasks and scheduler runs."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ScheduleRequest(BaseModel):
    interval_hours: int = Field(default=2, ge=1, le=24)
    start_at: Optional[datetime] = None


class TaskToggleRequest(BaseModel):
    is_active: bool


class TrackingTaskRead(BaseModel):
    task_id: int
    vessel_id: int
    user_id: Optional[str] = None
    task_type: str
    interval_hours: int
    last_run: Optional[datetime] = None
    next_run: datetime
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class VerifyTasksRequest(BaseModel):
    interval_hours: int = Field(default=2, ge=1, le=24)
