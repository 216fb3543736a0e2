"""Manual "check this vessel now" policy: opens and closes entries.

Unlike the scheduler's insert-only reconciler, an instant check toggles an
open entry:

  * open: the new check is moving, the vessel has at least
    manual_min_checks checks in the trailing manual_lookback_hours, all of
    them moving, and the vessel has no pending entry at all (open or
    closed). The entry starts at the earliest of those checks and has no
    end yet.
  * close: the new check is not moving and an open pending entry exists.
    The entry gets an end time, wall-clock duration and end coordinates.

Keep the two policies separate: they guarantee different things.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from seatime.models.base import SeaTimeStatusEnum, ServiceTypeEnum
from seatime.models.position_check import PositionCheck
from seatime.models.sea_time_entry import SeaTimeEntry
from seatime.models.vessel import Vessel
from seatime.modules.sea_time_policy import SeaTimePolicy, load_policy
from seatime.utils.geo import distance_between_nm

logger = logging.getLogger(__name__)


class ManualAction(str, enum.Enum):
    OPENED = "opened"
    CLOSED = "closed"
    NONE = "none"


@dataclass
class ManualCheckOutcome:
    action: ManualAction
    entry: Optional[SeaTimeEntry] = None


class ManualCheckPolicy:
    name = "manual_open_close"

    def __init__(self, policy: SeaTimePolicy | None = None):
        self.policy = policy or load_policy()

    def open_entry_for(self, db: Session, vessel_id: int) -> SeaTimeEntry | None:
        return (
            db.query(SeaTimeEntry)
            .filter(
                SeaTimeEntry.vessel_id == vessel_id,
                SeaTimeEntry.status == SeaTimeStatusEnum.PENDING,
                SeaTimeEntry.end_time.is_(None),
            )
            .order_by(SeaTimeEntry.start_time.desc())
            .first()
        )

    def has_pending_entry(self, db: Session, vessel_id: int) -> bool:
        """Any pending entry, open or closed, e.g. one the scheduler already inserted."""
        return (
            db.query(SeaTimeEntry.entry_id)
            .filter(
                SeaTimeEntry.vessel_id == vessel_id,
                SeaTimeEntry.status == SeaTimeStatusEnum.PENDING,
            )
            .first()
            is not None
        )

    def apply(self, db: Session, vessel: Vessel, check: PositionCheck) -> ManualCheckOutcome:
        open_entry = self.open_entry_for(db, vessel.vessel_id)
        if check.is_moving:
            if open_entry is not None:
                return ManualCheckOutcome(ManualAction.NONE, open_entry)
            if self.has_pending_entry(db, vessel.vessel_id):
                return ManualCheckOutcome(ManualAction.NONE)
            return self._maybe_open(db, vessel, check)
        if open_entry is not None:
            return self._close(db, open_entry, check)
        return ManualCheckOutcome(ManualAction.NONE)

    def _maybe_open(self, db: Session, vessel: Vessel, check: PositionCheck) -> ManualCheckOutcome:
        since = check.check_time - timedelta(hours=self.policy.manual_lookback_hours)
        window = (
            db.query(PositionCheck)
            .filter(
                PositionCheck.vessel_id == vessel.vessel_id,
                PositionCheck.check_time >= since,
                PositionCheck.check_time <= check.check_time,
            )
            .order_by(PositionCheck.check_time.asc())
            .all()
        )
        if len(window) < self.policy.manual_min_checks or not all(c.is_moving for c in window):
            return ManualCheckOutcome(ManualAction.NONE)

        earliest = window[0]
        entry = SeaTimeEntry(
            user_id=vessel.user_id,
            vessel_id=vessel.vessel_id,
            start_time=earliest.check_time,
            status=SeaTimeStatusEnum.PENDING,
            service_type=ServiceTypeEnum.ACTUAL_SEA_SERVICE,
            start_latitude=earliest.latitude,
            start_longitude=earliest.longitude,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        logger.info(
            "Opened sea time entry %d for vessel %s from %s after %d moving checks",
            entry.entry_id, vessel.vessel_name, entry.start_time.isoformat(), len(window),
        )
        return ManualCheckOutcome(ManualAction.OPENED, entry)

    def _close(self, db: Session, entry: SeaTimeEntry, check: PositionCheck) -> ManualCheckOutcome:
        entry.end_time = check.check_time
        entry.duration_hours = round((check.check_time - entry.start_time).total_seconds() / 3600, 2)
        entry.end_latitude = check.latitude
        entry.end_longitude = check.longitude
        entry.distance_nm = distance_between_nm(
            entry.start_latitude, entry.start_longitude, check.latitude, check.longitude
        )
        entry.mca_compliant = entry.duration_hours >= self.policy.min_underway_hours
        db.commit()
        db.refresh(entry)
        logger.info(
            "Closed sea time entry %d after %.2f hours (vessel stopped)",
            entry.entry_id, entry.duration_hours,
        )
        return ManualCheckOutcome(ManualAction.CLOSED, entry)
