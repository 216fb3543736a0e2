"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class SeaTimeStatusEnum(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ServiceTypeEnum(str, enum.Enum):
    ACTUAL_SEA_SERVICE = "actual_sea_service"
    WATCHKEEPING_SERVICE = "watchkeeping_service"
    STANDBY_SERVICE = "standby_service"
    YARD_SERVICE = "yard_service"
    SERVICE_IN_PORT = "service_in_port"


class TaskTypeEnum(str, enum.Enum):
    AIS_CHECK = "ais_check"


class AuthStatusEnum(str, enum.Enum):
    """Outcome of the credential part of a provider call, as recorded in ais_debug_logs."""
    AUTHENTICATED = "authenticated"
    FAILED = "authentication_failed"
    MISSING_KEY = "missing_api_key"
    UNKNOWN = "unknown"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values ("pending") rather than member names ("PENDING")."""
    return [member.value for member in enum_cls]
