"""Vessel registration and activation.

Activating a vessel deactivates every other vessel in the system, not only the
caller's.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from seatime.models.vessel import Vessel

logger = logging.getLogger(__name__)


class DuplicateVesselError(ValueError):
    """The user already registered this MMSI."""


def get_vessel(db: Session, vessel_id: int) -> Vessel | None:
    return db.query(Vessel).filter(Vessel.vessel_id == vessel_id).first()


def find_vessel_by_mmsi(db: Session, mmsi: str, user_id: Optional[str] = None) -> Vessel | None:
    return db.query(Vessel).filter(Vessel.mmsi == mmsi, Vessel.user_id == user_id).first()


def list_vessels(db: Session, user_id: Optional[str] = None) -> list[Vessel]:
    query = db.query(Vessel)
    if user_id is not None:
        query = query.filter(Vessel.user_id == user_id)
    return query.order_by(Vessel.created_at.desc(), Vessel.vessel_id.desc()).all()


def _deactivate_all(db: Session, except_vessel_id: Optional[int] = None) -> int:
    query = db.query(Vessel).filter(Vessel.is_active.is_(True))
    if except_vessel_id is not None:
        query = query.filter(Vessel.vessel_id != except_vessel_id)
    return query.update({Vessel.is_active: False}, synchronize_session="fetch")


def create_vessel(
    db: Session,
    mmsi: str,
    vessel_name: str,
    user_id: Optional[str] = None,
    is_active: bool = False,
    callsign: Optional[str] = None,
    flag: Optional[str] = None,
    vessel_type: Optional[str] = None,
) -> Vessel:
    if find_vessel_by_mmsi(db, mmsi, user_id) is not None:
        raise DuplicateVesselError(f"MMSI {mmsi} is already registered")

    if is_active:
        deactivated = _deactivate_all(db)
        logger.info("Deactivated %d other vessel(s) for new active vessel", deactivated)

    vessel = Vessel(
        user_id=user_id,
        mmsi=mmsi,
        vessel_name=vessel_name,
        callsign=callsign,
        flag=flag,
        vessel_type=vessel_type,
        is_active=is_active,
    )
    db.add(vessel)
    db.commit()
    db.refresh(vessel)
    logger.info("Registered vessel %d: %s (MMSI %s, active=%s)", vessel.vessel_id, vessel_name, mmsi, is_active)
    return vessel


def activate_vessel(db: Session, vessel: Vessel) -> Vessel:
    deactivated = _deactivate_all(db, except_vessel_id=vessel.vessel_id)
    vessel.is_active = True
    db.commit()
    db.refresh(vessel)
    logger.info("Activated vessel %d (%s); %d other vessel(s) deactivated", vessel.vessel_id, vessel.vessel_name, deactivated)
    return vessel


def delete_vessel(db: Session, vessel: Vessel) -> None:
    """Delete a vessel together with its tasks, checks and entries."""
    vessel_id = vessel.vessel_id
    db.delete(vessel)
    db.commit()
    logger.info("Deleted vessel %d", vessel_id)
