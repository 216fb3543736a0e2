"""Position check store: append-only log of AIS polls.

Rows are inserted once and never updated or deleted here; the analyzer and
the status endpoints only read them.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from seatime.models.position_check import PositionCheck
from seatime.models.vessel import Vessel
from seatime.modules.ais_client import API_SOURCE
from seatime.modules.ais_normalize import AISPosition
from seatime.utils.clock import to_naive_utc

logger = logging.getLogger(__name__)


def record_position_check(
    db: Session,
    vessel: Vessel,
    position: AISPosition,
    check_time: datetime,
) -> PositionCheck:
    """Insert and commit one check for ``vessel`` at wall-clock ``check_time``."""
    check = PositionCheck(
        user_id=vessel.user_id,
        vessel_id=vessel.vessel_id,
        check_time=to_naive_utc(check_time),
        is_moving=position.is_moving,
        speed_knots=position.speed_knots,
        latitude=position.latitude,
        longitude=position.longitude,
        reported_at=to_naive_utc(position.timestamp) if position.timestamp_trusted and position.timestamp else None,
        api_source=API_SOURCE,
    )
    db.add(check)
    db.commit()
    db.refresh(check)
    logger.debug(
        "Stored position check %d for vessel %d: moving=%s, (%s, %s)",
        check.check_id, vessel.vessel_id, check.is_moving, check.latitude, check.longitude,
    )
    return check


def recent_checks(
    db: Session,
    vessel_id: int,
    as_of: datetime,
    hours: float = 24,
) -> list[PositionCheck]:
    """Checks in ``[as_of - hours, as_of]``, oldest first."""
    as_of = to_naive_utc(as_of)
    since = as_of - timedelta(hours=hours)
    return (
        db.query(PositionCheck)
        .filter(
            PositionCheck.vessel_id == vessel_id,
            PositionCheck.check_time >= since,
            PositionCheck.check_time <= as_of,
        )
        .order_by(PositionCheck.check_time.asc(), PositionCheck.check_id.asc())
        .all()
    )


def latest_checks(
    db: Session,
    vessel_id: int,
    as_of: datetime,
    hours: float = 24,
    limit: int = 50,
) -> list[PositionCheck]:
    """Most recent checks in the trailing window, newest first, capped at ``limit``."""
    as_of = to_naive_utc(as_of)
    since = as_of - timedelta(hours=hours)
    return (
        db.query(PositionCheck)
        .filter(PositionCheck.vessel_id == vessel_id, PositionCheck.check_time >= since)
        .order_by(PositionCheck.check_time.desc(), PositionCheck.check_id.desc())
        .limit(limit)
        .all()
    )


def latest_check(db: Session, vessel_id: int) -> PositionCheck | None:
    return (
        db.query(PositionCheck)
        .filter(PositionCheck.vessel_id == vessel_id)
        .order_by(PositionCheck.check_time.desc(), PositionCheck.check_id.desc())
        .first()
    )
