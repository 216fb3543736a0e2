"""Scheduled sea-time reconciliation: turns a movement analysis into at most one new entry.

Gates, applied in order; the first that fails ends reconciliation:
  1. total underway hours >= min_underway_hours (MCA 4-hour rule, inclusive)
  2. start and end coordinates differ (identical fixes = GPS drift / stale fix)
  3. no entry of the same user already starts on the start check's calendar day
     (any vessel, not only this one)
  4. insert a pending actual_sea_service entry

The policy is insert-only. An existing entry is never extended, even when a
later poll on the same day finds more underway time. The manual check path
uses a different, open/close policy (see manual_check.py).

Calendar days are taken from the stored naive-UTC start times.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from seatime.models.base import SeaTimeStatusEnum, ServiceTypeEnum
from seatime.models.sea_time_entry import SeaTimeEntry
from seatime.models.vessel import Vessel
from seatime.modules.movement_analyzer import MovementAnalysis
from seatime.modules.sea_time_policy import SeaTimePolicy, load_policy
from seatime.utils.clock import to_naive_utc
from seatime.utils.geo import degree_delta, distance_between_nm

logger = logging.getLogger(__name__)


class ReconcileReason(str, enum.Enum):
    CREATED = "created"
    INSUFFICIENT_HOURS = "insufficient_hours"
    GPS_DRIFT = "gps_drift"
    DAY_HAS_ENTRY = "day_has_entry"


@dataclass
class ReconcileDecision:
    reason: ReconcileReason
    calendar_day: Optional[date] = None
    entry: Optional[SeaTimeEntry] = None

    @property
    def should_create(self) -> bool:
        return self.reason == ReconcileReason.CREATED


def calendar_day(value: datetime) -> date:
    return to_naive_utc(value).date()


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class ScheduledEntryPolicy:
    """Insert-only reconciliation used by the background scheduler."""

    name = "scheduled_insert_only"

    def __init__(self, policy: SeaTimePolicy | None = None):
        self.policy = policy or load_policy()

    def evaluate(
        self,
        analysis: MovementAnalysis,
        existing_entries: Iterable[SeaTimeEntry],
    ) -> ReconcileDecision:
        """Pure gate evaluation against the user's existing entries."""
        if not analysis.has_movement or analysis.total_underway_hours < self.policy.min_underway_hours:
            return ReconcileDecision(ReconcileReason.INSUFFICIENT_HOURS)

        start, end = analysis.start_check, analysis.end_check
        if degree_delta(start.latitude, end.latitude) == 0 and degree_delta(start.longitude, end.longitude) == 0:
            return ReconcileDecision(ReconcileReason.GPS_DRIFT)

        day = calendar_day(start.check_time)
        for entry in existing_entries:
            if entry.start_time is not None and calendar_day(entry.start_time) == day:
                return ReconcileDecision(ReconcileReason.DAY_HAS_ENTRY, calendar_day=day)

        return ReconcileDecision(ReconcileReason.CREATED, calendar_day=day)

    def entries_for_day(self, db: Session, user_id: Optional[str], day: date) -> list[SeaTimeEntry]:
        day_start, day_end = _day_bounds(day)
        return (
            db.query(SeaTimeEntry)
            .filter(
                SeaTimeEntry.user_id == user_id,
                SeaTimeEntry.start_time >= day_start,
                SeaTimeEntry.start_time < day_end,
            )
            .all()
        )

    def reconcile(self, db: Session, vessel: Vessel, analysis: MovementAnalysis) -> ReconcileDecision:
        """Apply the gates and insert (and commit) a pending entry when they all pass."""
        existing: list[SeaTimeEntry] = []
        if analysis.has_movement:
            existing = self.entries_for_day(db, vessel.user_id, calendar_day(analysis.start_check.check_time))

        decision = self.evaluate(analysis, existing)
        hours = analysis.total_underway_hours_rounded

        if decision.reason == ReconcileReason.INSUFFICIENT_HOURS:
            logger.info(
                "Vessel %s (MMSI %s) has %.2f underway hours (need %.1f+), no entry created",
                vessel.vessel_name, vessel.mmsi, hours, self.policy.min_underway_hours,
            )
            return decision

        start, end = analysis.start_check, analysis.end_check
        if decision.reason == ReconcileReason.GPS_DRIFT:
            logger.warning(
                "Vessel %s (MMSI %s) GPS drift: identical coordinates (%s, %s) despite %.2f underway hours, no entry created",
                vessel.vessel_name, vessel.mmsi, start.latitude, start.longitude, hours,
            )
            return decision

        if decision.reason == ReconcileReason.DAY_HAS_ENTRY:
            logger.info(
                "Vessel %s (MMSI %s): entry already exists for calendar day %s, skipping",
                vessel.vessel_name, vessel.mmsi, decision.calendar_day,
            )
            return decision

        entry = SeaTimeEntry(
            user_id=vessel.user_id,
            vessel_id=vessel.vessel_id,
            start_time=to_naive_utc(start.check_time),
            end_time=to_naive_utc(end.check_time),
            duration_hours=hours,
            sea_days=1,
            status=SeaTimeStatusEnum.PENDING,
            service_type=ServiceTypeEnum.ACTUAL_SEA_SERVICE,
            start_latitude=start.latitude,
            start_longitude=start.longitude,
            end_latitude=end.latitude,
            end_longitude=end.longitude,
            distance_nm=distance_between_nm(start.latitude, start.longitude, end.latitude, end.longitude),
            mca_compliant=True,
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        decision.entry = entry

        logger.info(
            "Created sea day entry %d for vessel %s: %d movement periods, %.2f underway hours, (%s, %s) -> (%s, %s)",
            entry.entry_id, vessel.vessel_name, len(analysis.windows), hours,
            start.latitude, start.longitude, end.latitude, end.longitude,
        )
        return decision
