from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.orm import Session, joinedload

from seatime.database import get_db
from seatime.config import settings
from seatime.models.base import SeaTimeStatusEnum
from seatime.models.sea_time_entry import SeaTimeEntry
from seatime.models.vessel import Vessel
from seatime.schemas.position_check import AISStatusResponse, ManualCheckResponse, PositionCheckRead
from seatime.schemas.sea_time import LogbookEntryRead, ManualEntryCreate, ReviewRequest, SeaTimeEntryRead
from seatime.schemas.tracking import ScheduleRequest, TaskToggleRequest, TrackingTaskRead, VerifyTasksRequest
from seatime.schemas.vessel import VesselCreate, VesselRead
from seatime.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Caller identity as forwarded by the auth layer in front of this API."""
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None


def _get_vessel_or_404(db: Session, vessel_id: int) -> Vessel:
    from seatime.modules.vessel_registry import get_vessel

    vessel = get_vessel(db, vessel_id)
    if vessel is None:
        raise HTTPException(status_code=404, detail="Vessel not found")
    return vessel


def _get_entry_or_404(db: Session, entry_id: int) -> SeaTimeEntry:
    entry = db.query(SeaTimeEntry).filter(SeaTimeEntry.entry_id == entry_id).first()
    if entry is None:
        raise HTTPException(status_code=404, detail="Sea time entry not found")
    return entry


# ---------------------------------------------------------------------------
# Vessels
# ---------------------------------------------------------------------------


@router.get("/vessels", response_model=list[VesselRead], tags=["vessels"])
def list_vessels(db: Session = Depends(get_db), user_id: Optional[str] = Depends(get_user_id)):
    from seatime.modules.vessel_registry import list_vessels as _list_vessels

    return _list_vessels(db, user_id=user_id)


@router.post("/vessels", response_model=VesselRead, status_code=201, tags=["vessels"])
def create_vessel(
    body: VesselCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Register a vessel. Creating it as active deactivates every other vessel."""
    from seatime.modules.vessel_registry import DuplicateVesselError, create_vessel as _create_vessel

    try:
        return _create_vessel(
            db,
            mmsi=body.mmsi,
            vessel_name=body.vessel_name,
            user_id=user_id,
            is_active=body.is_active,
            callsign=body.callsign,
            flag=body.flag,
            vessel_type=body.vessel_type,
        )
    except DuplicateVesselError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.put("/vessels/{vessel_id}/activate", response_model=VesselRead, tags=["vessels"])
def activate_vessel(vessel_id: int, db: Session = Depends(get_db)):
    from seatime.modules.vessel_registry import activate_vessel as _activate_vessel

    vessel = _get_vessel_or_404(db, vessel_id)
    return _activate_vessel(db, vessel)


@router.delete("/vessels/{vessel_id}", tags=["vessels"])
def delete_vessel(vessel_id: int, db: Session = Depends(get_db)):
    from seatime.modules.vessel_registry import delete_vessel as _delete_vessel

    vessel = _get_vessel_or_404(db, vessel_id)
    _delete_vessel(db, vessel)
    return {"vessel_id": vessel_id, "deleted": True}


@router.get("/vessels/{vessel_id}/sea-time", response_model=list[SeaTimeEntryRead], tags=["sea-time"])
def vessel_sea_time(vessel_id: int, db: Session = Depends(get_db)):
    _get_vessel_or_404(db, vessel_id)
    return (
        db.query(SeaTimeEntry)
        .filter(SeaTimeEntry.vessel_id == vessel_id)
        .order_by(SeaTimeEntry.start_time.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Tracking tasks
# ---------------------------------------------------------------------------


@router.post("/vessels/{vessel_id}/tracking", response_model=TrackingTaskRead, status_code=201, tags=["tracking"])
def schedule_tracking(vessel_id: int, body: ScheduleRequest, db: Session = Depends(get_db)):
    """Schedule periodic AIS checks, replacing any existing task for the vessel."""
    from seatime.modules.task_registry import schedule_ais_checks

    vessel = _get_vessel_or_404(db, vessel_id)
    return schedule_ais_checks(db, vessel, body.interval_hours, start_at=body.start_at)


@router.get("/tracking/tasks", response_model=list[TrackingTaskRead], tags=["tracking"])
def list_tracking_tasks(db: Session = Depends(get_db), user_id: Optional[str] = Depends(get_user_id)):
    from seatime.modules.task_registry import list_tasks

    return list_tasks(db, user_id=user_id)


@router.patch("/tracking/tasks/{task_id}", response_model=TrackingTaskRead, tags=["tracking"])
def toggle_tracking_task(task_id: int, body: TaskToggleRequest, db: Session = Depends(get_db)):
    from seatime.modules.task_registry import get_task, set_task_active

    task = get_task(db, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Tracking task not found")
    return set_task_active(db, task, body.is_active)


@router.post("/tracking/verify", tags=["tracking"])
def verify_tracking_tasks(body: VerifyTasksRequest | None = None, db: Session = Depends(get_db)):
    """Make sure every active vessel has an active tracking task."""
    from seatime.modules.task_registry import ensure_tracking_tasks

    interval = body.interval_hours if body else settings.DEFAULT_CHECK_INTERVAL_HOURS
    return ensure_tracking_tasks(db, interval_hours=interval)


@router.post("/tracking/run", tags=["tracking"])
def run_scheduler_tick():
    """Run one scheduler tick immediately (same code path as the background loop)."""
    from seatime.modules.scheduler import get_scheduler

    summary = get_scheduler().run_tick()
    if summary is None:
        raise HTTPException(status_code=409, detail="A scheduler tick is already in progress")
    return summary.to_dict()


# ---------------------------------------------------------------------------
# AIS checks
# ---------------------------------------------------------------------------


@router.post("/ais/check/{vessel_id}", response_model=ManualCheckResponse, tags=["ais"])
def manual_ais_check(vessel_id: int, db: Session = Depends(get_db)):
    """Poll the provider now and open/close the vessel's running entry.

    Provider failures surface as HTTP errors (see the AISProviderError handler)
    and never record a "not moving" check.
    """
    from seatime.modules.ais_client import fetch_position
    from seatime.modules.manual_check import ManualAction, ManualCheckPolicy
    from seatime.modules.movement_analyzer import analyze
    from seatime.modules.position_store import recent_checks, record_position_check
    from seatime.modules.sea_time_policy import load_policy

    vessel = _get_vessel_or_404(db, vessel_id)
    position = fetch_position(
        vessel.mmsi, extended=True, db=db, vessel_id=vessel.vessel_id, user_id=vessel.user_id
    )
    check_time = utcnow()
    check = record_position_check(db, vessel, position, check_time)
    outcome = ManualCheckPolicy().apply(db, vessel, check)

    policy = load_policy()
    analysis = analyze(recent_checks(db, vessel.vessel_id, check_time, hours=policy.lookback_hours), check_time, policy)

    return ManualCheckResponse(
        check_id=check.check_id,
        is_moving=check.is_moving,
        speed_knots=check.speed_knots,
        latitude=check.latitude,
        longitude=check.longitude,
        timestamp_trusted=position.timestamp_trusted,
        sea_time_entry_created=outcome.action == ManualAction.OPENED,
        sea_time_entry_closed=outcome.action == ManualAction.CLOSED,
        entry_id=outcome.entry.entry_id if outcome.entry is not None else None,
        underway_hours_24h=analysis.total_underway_hours_rounded,
    )


@router.get("/ais/status/{vessel_id}", response_model=AISStatusResponse, tags=["ais"])
def ais_status(vessel_id: int, db: Session = Depends(get_db)):
    """Latest check plus up to 50 checks from the last 24 hours."""
    from seatime.modules.position_store import latest_check, latest_checks

    _get_vessel_or_404(db, vessel_id)
    current = latest_check(db, vessel_id)
    recent = latest_checks(db, vessel_id, utcnow(), hours=24, limit=50)
    return AISStatusResponse(
        is_moving=current.is_moving if current else False,
        current_check=PositionCheckRead.model_validate(current) if current else None,
        recent_checks=[PositionCheckRead.model_validate(c) for c in recent],
    )


@router.get("/ais/analysis/{vessel_id}", tags=["ais"])
def ais_analysis(vessel_id: int, db: Session = Depends(get_db)):
    """Replay the scheduler's movement analysis and reconciliation gates without writing anything."""
    from seatime.modules.movement_analyzer import analyze
    from seatime.modules.position_store import recent_checks
    from seatime.modules.sea_time_policy import load_policy
    from seatime.modules.sea_time_reconciler import ScheduledEntryPolicy, calendar_day

    vessel = _get_vessel_or_404(db, vessel_id)
    policy = load_policy()
    now = utcnow()
    analysis = analyze(recent_checks(db, vessel_id, now, hours=policy.lookback_hours), now, policy)

    reconciler = ScheduledEntryPolicy(policy)
    existing = []
    if analysis.has_movement:
        existing = reconciler.entries_for_day(db, vessel.user_id, calendar_day(analysis.start_check.check_time))
    decision = reconciler.evaluate(analysis, existing)

    result = analysis.to_dict()
    result["vessel_id"] = vessel_id
    result["would_create_entry"] = decision.should_create
    result["reconcile_reason"] = decision.reason.value
    return result


# ---------------------------------------------------------------------------
# Sea time entries
# ---------------------------------------------------------------------------


@router.get("/sea-time", response_model=list[SeaTimeEntryRead], tags=["sea-time"])
def list_sea_time(
    status: Optional[SeaTimeStatusEnum] = Query(None),
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    query = db.query(SeaTimeEntry)
    if user_id is not None:
        query = query.filter(SeaTimeEntry.user_id == user_id)
    if status is not None:
        query = query.filter(SeaTimeEntry.status == status)
    return query.order_by(SeaTimeEntry.start_time.desc()).all()


@router.get("/sea-time/pending", response_model=list[SeaTimeEntryRead], tags=["sea-time"])
def pending_sea_time(db: Session = Depends(get_db), user_id: Optional[str] = Depends(get_user_id)):
    query = db.query(SeaTimeEntry).filter(SeaTimeEntry.status == SeaTimeStatusEnum.PENDING)
    if user_id is not None:
        query = query.filter(SeaTimeEntry.user_id == user_id)
    return query.order_by(SeaTimeEntry.start_time.desc()).all()


def _require_pending(entry: SeaTimeEntry) -> None:
    if entry.status != SeaTimeStatusEnum.PENDING:
        raise HTTPException(
            status_code=409,
            detail=f"Only pending entries can be reviewed (entry is {SeaTimeStatusEnum(entry.status).value})",
        )


@router.put("/sea-time/{entry_id}/confirm", response_model=SeaTimeEntryRead, tags=["sea-time"])
def confirm_sea_time(entry_id: int, body: ReviewRequest | None = None, db: Session = Depends(get_db)):
    """Confirm a pending entry. An entry still open is closed at the time of confirmation."""
    from seatime.modules.sea_time_policy import load_policy

    entry = _get_entry_or_404(db, entry_id)
    _require_pending(entry)

    if entry.end_time is None:
        entry.end_time = utcnow()
        entry.duration_hours = round((entry.end_time - entry.start_time).total_seconds() / 3600, 2)
    entry.status = SeaTimeStatusEnum.CONFIRMED
    entry.sea_days = 1 if (entry.duration_hours or 0) >= load_policy().min_underway_hours else 0
    if body and body.notes:
        entry.notes = body.notes
    db.commit()
    db.refresh(entry)
    logger.info("Sea time entry %d confirmed: %s hours", entry_id, entry.duration_hours)
    return entry


@router.put("/sea-time/{entry_id}/reject", response_model=SeaTimeEntryRead, tags=["sea-time"])
def reject_sea_time(entry_id: int, body: ReviewRequest | None = None, db: Session = Depends(get_db)):
    entry = _get_entry_or_404(db, entry_id)
    _require_pending(entry)

    entry.status = SeaTimeStatusEnum.REJECTED
    entry.sea_days = None
    if body and body.notes:
        entry.notes = body.notes
    db.commit()
    db.refresh(entry)
    logger.info("Sea time entry %d rejected", entry_id)
    return entry


@router.delete("/sea-time/{entry_id}", tags=["sea-time"])
def delete_sea_time(entry_id: int, db: Session = Depends(get_db)):
    entry = _get_entry_or_404(db, entry_id)
    db.delete(entry)
    db.commit()
    logger.info("Sea time entry %d deleted", entry_id)
    return {"entry_id": entry_id, "deleted": True}


# ---------------------------------------------------------------------------
# Logbook
# ---------------------------------------------------------------------------


@router.get("/logbook", response_model=list[LogbookEntryRead], tags=["logbook"])
def logbook(
    start_date: Optional[datetime] = Query(None, description="Earliest entry start (inclusive)"),
    end_date: Optional[datetime] = Query(None, description="Latest entry start (inclusive)"),
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Entries oldest first with their vessel, for the logbook/calendar view."""
    query = db.query(SeaTimeEntry).options(joinedload(SeaTimeEntry.vessel))
    if user_id is not None:
        query = query.filter(SeaTimeEntry.user_id == user_id)
    if start_date is not None:
        query = query.filter(SeaTimeEntry.start_time >= to_naive_utc(start_date))
    if end_date is not None:
        query = query.filter(SeaTimeEntry.start_time <= to_naive_utc(end_date))
    entries = query.order_by(SeaTimeEntry.start_time.asc()).all()
    logger.info("Logbook: %d entries (from=%s, to=%s)", len(entries), start_date, end_date)
    return entries


@router.post("/logbook/manual-entry", response_model=LogbookEntryRead, status_code=201, tags=["logbook"])
def create_manual_entry(
    body: ManualEntryCreate,
    db: Session = Depends(get_db),
    user_id: Optional[str] = Depends(get_user_id),
):
    """Record sea time the user logged themselves. It is stored as confirmed.

    The entry counts toward the one-entry-per-day rule, so the scheduler
    will not add its own entry for the same calendar day.
    """
    from seatime.modules.sea_time_policy import load_policy
    from seatime.utils.geo import distance_between_nm

    vessel = _get_vessel_or_404(db, body.vessel_id)
    start_time = to_naive_utc(body.start_time)
    end_time = to_naive_utc(body.end_time) if body.end_time is not None else None

    duration_hours = None
    sea_days = None
    mca_compliant = None
    if end_time is not None:
        duration_hours = round((end_time - start_time).total_seconds() / 3600, 2)
        mca_compliant = duration_hours >= load_policy().min_underway_hours
        sea_days = 1 if mca_compliant else 0

    entry = SeaTimeEntry(
        user_id=user_id or vessel.user_id,
        vessel_id=vessel.vessel_id,
        start_time=start_time,
        end_time=end_time,
        duration_hours=duration_hours,
        sea_days=sea_days,
        status=SeaTimeStatusEnum.CONFIRMED,
        service_type=body.service_type,
        start_latitude=body.start_latitude,
        start_longitude=body.start_longitude,
        end_latitude=body.end_latitude,
        end_longitude=body.end_longitude,
        distance_nm=distance_between_nm(
            body.start_latitude, body.start_longitude, body.end_latitude, body.end_longitude
        ),
        mca_compliant=mca_compliant,
        notes=body.notes,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(
        "Manual sea time entry %d created for vessel %s: %s to %s (%s hours)",
        entry.entry_id, vessel.vessel_name, start_time.isoformat(),
        end_time.isoformat() if end_time else "open", duration_hours,
    )
    return entry
