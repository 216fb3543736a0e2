"""Tracking task registry: one ais_check task per vessel.

(Re)scheduling deletes any existing task for the vessel before inserting the
new one, so repeated scheduling never grows the table. Tasks are never deleted
automatically; the scheduler only advances last_run/next_run.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from seatime.config import settings
from seatime.models.base import TaskTypeEnum
from seatime.models.tracking_task import TrackingTask
from seatime.models.vessel import Vessel
from seatime.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


def _validate_interval(interval_hours: int) -> int:
    if isinstance(interval_hours, bool) or int(interval_hours) != interval_hours or interval_hours <= 0:
        raise ValueError(f"interval_hours must be a positive whole number of hours, got {interval_hours!r}")
    return int(interval_hours)


def schedule_ais_checks(
    db: Session,
    vessel: Vessel,
    interval_hours: int | None = None,
    start_at: Optional[datetime] = None,
) -> TrackingTask:
    """Replace the vessel's ais_check task. The first run is due at ``start_at`` (default: now)."""
    interval = _validate_interval(
        interval_hours if interval_hours is not None else settings.DEFAULT_CHECK_INTERVAL_HOURS
    )
    removed = (
        db.query(TrackingTask)
        .filter(
            TrackingTask.vessel_id == vessel.vessel_id,
            TrackingTask.task_type == TaskTypeEnum.AIS_CHECK.value,
        )
        .delete(synchronize_session="fetch")
    )
    db.flush()

    task = TrackingTask(
        user_id=vessel.user_id,
        vessel_id=vessel.vessel_id,
        task_type=TaskTypeEnum.AIS_CHECK.value,
        interval_hours=interval,
        last_run=None,
        next_run=to_naive_utc(start_at) if start_at else utcnow(),
        is_active=True,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info(
        "Scheduled AIS checks for vessel %s (MMSI %s) every %dh, first run %s%s",
        vessel.vessel_name, vessel.mmsi, interval, task.next_run.isoformat(),
        " (replaced existing task)" if removed else "",
    )
    return task


def get_task(db: Session, task_id: int) -> TrackingTask | None:
    return db.query(TrackingTask).filter(TrackingTask.task_id == task_id).first()


def task_for_vessel(db: Session, vessel_id: int) -> TrackingTask | None:
    return (
        db.query(TrackingTask)
        .filter(
            TrackingTask.vessel_id == vessel_id,
            TrackingTask.task_type == TaskTypeEnum.AIS_CHECK.value,
        )
        .first()
    )


def list_tasks(db: Session, user_id: Optional[str] = None) -> list[TrackingTask]:
    query = db.query(TrackingTask)
    if user_id is not None:
        query = query.filter(TrackingTask.user_id == user_id)
    return query.order_by(TrackingTask.next_run.asc()).all()


def set_task_active(db: Session, task: TrackingTask, is_active: bool) -> TrackingTask:
    task.is_active = is_active
    db.commit()
    db.refresh(task)
    logger.info("Tracking task %d %s", task.task_id, "activated" if is_active else "deactivated")
    return task


def due_tasks(db: Session, now: datetime) -> list[tuple[TrackingTask, Vessel]]:
    """Active ais_check tasks with next_run <= now, with their vessels."""
    now = to_naive_utc(now)
    return (
        db.query(TrackingTask, Vessel)
        .join(Vessel, Vessel.vessel_id == TrackingTask.vessel_id)
        .filter(
            TrackingTask.task_type == TaskTypeEnum.AIS_CHECK.value,
            TrackingTask.is_active.is_(True),
            TrackingTask.next_run <= now,
        )
        .order_by(TrackingTask.next_run.asc(), TrackingTask.task_id.asc())
        .all()
    )


def mark_task_run(db: Session, task: TrackingTask, run_time: datetime) -> TrackingTask:
    """Record a successful run; the next run is one interval after it."""
    run_time = to_naive_utc(run_time)
    task.last_run = run_time
    task.next_run = run_time + timedelta(hours=task.interval_hours)
    db.commit()
    db.refresh(task)
    return task


def ensure_tracking_tasks(db: Session, interval_hours: int | None = None) -> dict:
    """Give every active vessel an active ais_check task.

    Missing tasks are created (due immediately); inactive ones are reactivated.
    Returns a summary with per-vessel actions.
    """
    interval = _validate_interval(
        interval_hours if interval_hours is not None else settings.DEFAULT_CHECK_INTERVAL_HOURS
    )
    summary = {
        "total_active_vessels": 0,
        "tasks_created": 0,
        "tasks_reactivated": 0,
        "tasks_already_active": 0,
        "details": [],
    }

    vessels = db.query(Vessel).filter(Vessel.is_active.is_(True)).all()
    summary["total_active_vessels"] = len(vessels)

    for vessel in vessels:
        task = task_for_vessel(db, vessel.vessel_id)
        if task is None:
            schedule_ais_checks(db, vessel, interval)
            action = "created"
            summary["tasks_created"] += 1
        elif not task.is_active:
            set_task_active(db, task, True)
            action = "reactivated"
            summary["tasks_reactivated"] += 1
        else:
            action = "already_active"
            summary["tasks_already_active"] += 1
        summary["details"].append({
            "vessel_id": vessel.vessel_id,
            "vessel_name": vessel.vessel_name,
            "mmsi": vessel.mmsi,
            "action": action,
        })

    logger.info(
        "Tracking task verification: %d active vessels, %d created, %d reactivated",
        summary["total_active_vessels"], summary["tasks_created"], summary["tasks_reactivated"],
    )
    return summary
