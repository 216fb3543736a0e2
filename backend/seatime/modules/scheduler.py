"""Background scheduler for periodic vessel position checks.

Every tick (default 60 s) the scheduler:
  1. finds active ais_check tasks whose next_run has passed,
  2. for each, sequentially: polls the provider, stores the check, analyzes
     the last 24 h of checks and lets the reconciler insert an entry,
  3. moves the task's last_run/next_run forward.

A tick that fires while the previous one is still running is skipped, not
queued. A failed poll leaves the task untouched, so it is due again on the
next tick (retry without backoff). Any failure is confined to its own task.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from seatime.config import settings
from seatime.models.tracking_task import TrackingTask
from seatime.models.vessel import Vessel
from seatime.modules.ais_client import AISProviderError, fetch_position
from seatime.modules.ais_normalize import AISPosition
from seatime.modules.movement_analyzer import analyze
from seatime.modules.position_store import record_position_check, recent_checks
from seatime.modules.sea_time_policy import SeaTimePolicy, load_policy
from seatime.modules.sea_time_reconciler import ScheduledEntryPolicy
from seatime.modules.task_registry import due_tasks, mark_task_run
from seatime.utils.clock import utcnow

logger = logging.getLogger(__name__)

PositionFetcher = Callable[..., AISPosition]


@dataclass
class TaskResult:
    task_id: int
    vessel_id: int
    mmsi: str
    status: str  # "completed" | "poll_failed" | "error"
    error_kind: Optional[str] = None
    error: Optional[str] = None
    check_id: Optional[int] = None
    underway_hours: Optional[float] = None
    reconcile_reason: Optional[str] = None
    entry_id: Optional[int] = None
    next_run: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "vessel_id": self.vessel_id,
            "mmsi": self.mmsi,
            "status": self.status,
            "error_kind": self.error_kind,
            "error": self.error,
            "check_id": self.check_id,
            "underway_hours": self.underway_hours,
            "reconcile_reason": self.reconcile_reason,
            "entry_id": self.entry_id,
            "next_run": self.next_run.isoformat() if self.next_run else None,
        }


@dataclass
class TickSummary:
    started_at: datetime
    due_tasks: int = 0
    results: list[TaskResult] = field(default_factory=list)
    skipped_reason: Optional[str] = None

    @property
    def completed(self) -> int:
        return sum(1 for r in self.results if r.status == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status != "completed")

    @property
    def entries_created(self) -> int:
        return sum(1 for r in self.results if r.entry_id is not None)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "due_tasks": self.due_tasks,
            "completed": self.completed,
            "failed": self.failed,
            "entries_created": self.entries_created,
            "skipped_reason": self.skipped_reason,
            "results": [r.to_dict() for r in self.results],
        }


class TrackingScheduler:
    """Owns the tick loop and the in-progress guard."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        fetcher: PositionFetcher = fetch_position,
        reconciler: ScheduledEntryPolicy | None = None,
        policy: SeaTimePolicy | None = None,
        tick_seconds: int | None = None,
        api_key: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.policy = policy or load_policy()
        self.reconciler = reconciler or ScheduledEntryPolicy(self.policy)
        self.tick_seconds = tick_seconds or settings.SCHEDULER_TICK_SECONDS
        self._api_key = api_key
        self.clock = clock
        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def api_key(self) -> str | None:
        return self._api_key or settings.MYSHIPTRACKING_API_KEY

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def tick_in_progress(self) -> bool:
        return self._tick_lock.locked()

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Run one tick now, then one every tick_seconds on a daemon thread."""
        if self.is_running:
            logger.warning("Scheduler is already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="seatime-scheduler", daemon=True)
        self._thread.start()
        logger.info("Scheduler started: checking for due tasks every %ds", self.tick_seconds)

    def stop(self, timeout: float | None = 10.0) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Scheduler stopped")

    def run_forever(self) -> None:
        """Blocking variant of start() for the CLI; returns after stop() or Ctrl+C."""
        self._stop.clear()
        self._loop()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_tick()
            except Exception:
                logger.exception("Error in scheduler iteration")
            self._stop.wait(self.tick_seconds)

    # ------------------------------------------------------------------
    # One tick
    # ------------------------------------------------------------------

    def run_tick(self, now: datetime | None = None) -> TickSummary | None:
        """Process every due task once. Returns None when another tick is still running."""
        if not self._tick_lock.acquire(blocking=False):
            logger.debug("Scheduler iteration already in progress, skipping")
            return None
        try:
            return self._run_tick(now or self.clock())
        finally:
            self._tick_lock.release()

    def _run_tick(self, now: datetime) -> TickSummary:
        summary = TickSummary(started_at=now)
        db = self.session_factory()
        try:
            due = due_tasks(db, now)
            summary.due_tasks = len(due)
            if not due:
                logger.debug("No due tasks at %s", now.isoformat())
                return summary

            if not self.api_key:
                logger.warning(
                    "MyShipTracking API key not configured, leaving %d due task(s) for a later tick", len(due)
                )
                summary.skipped_reason = "missing_api_key"
                return summary

            logger.info("Found %d due scheduled task(s)", len(due))
            # Read identities up front; a rollback in one task expires the others
            idents = [(task.task_id, vessel.vessel_id, vessel.mmsi) for task, vessel in due]
            for (task, vessel), (task_id, vessel_id, mmsi) in zip(due, idents):
                try:
                    result = self.process_task(db, task, vessel)
                except Exception as exc:
                    db.rollback()
                    logger.exception("Scheduled task %d (MMSI %s) aborted", task_id, mmsi)
                    result = TaskResult(
                        task_id=task_id, vessel_id=vessel_id, mmsi=mmsi, status="error",
                        error_kind=type(exc).__name__, error=str(exc),
                    )
                summary.results.append(result)
        finally:
            db.close()

        logger.info(
            "Scheduler tick done: %d due, %d completed, %d failed, %d entries created",
            summary.due_tasks, summary.completed, summary.failed, summary.entries_created,
        )
        return summary

    def process_task(self, db: Session, task: TrackingTask, vessel: Vessel) -> TaskResult:
        """Poll → store → analyze → reconcile → reschedule for one task."""
        task_id, vessel_id, mmsi = task.task_id, vessel.vessel_id, vessel.mmsi
        result = TaskResult(task_id=task_id, vessel_id=vessel_id, mmsi=mmsi, status="completed")
        try:
            logger.info(
                "Processing scheduled AIS check: task=%d, vessel=%s (MMSI %s), scheduled_for=%s",
                task_id, vessel.vessel_name, mmsi, task.next_run.isoformat(),
            )
            position = self.fetcher(
                mmsi,
                api_key=self.api_key,
                extended=True,
                db=db,
                vessel_id=vessel_id,
                user_id=vessel.user_id,
            )
        except AISProviderError as exc:
            # Task stays due; the next tick retries it
            logger.warning(
                "Failed to fetch AIS data for task %d, vessel %s (MMSI %s) [%s]: %s",
                task_id, vessel.vessel_name, mmsi, exc.kind, exc,
            )
            result.status = "poll_failed"
            result.error_kind = exc.kind
            result.error = str(exc)
            return result
        except Exception as exc:
            db.rollback()
            logger.exception("Unexpected error polling task %d (MMSI %s)", task_id, mmsi)
            result.status = "error"
            result.error_kind = type(exc).__name__
            result.error = str(exc)
            return result

        try:
            check_time = self.clock()
            check = record_position_check(db, vessel, position, check_time)
            result.check_id = check.check_id

            history = recent_checks(db, vessel_id, check_time, hours=self.policy.lookback_hours)
            analysis = analyze(history, check_time, self.policy)
            result.underway_hours = analysis.total_underway_hours_rounded

            decision = self.reconciler.reconcile(db, vessel, analysis)
            result.reconcile_reason = decision.reason.value
            if decision.entry is not None:
                result.entry_id = decision.entry.entry_id

            mark_task_run(db, task, check_time)
            result.next_run = task.next_run
            logger.info(
                "Updated scheduled task %d for vessel %s: next check at %s",
                task_id, vessel.vessel_name, task.next_run.isoformat(),
            )
        except Exception as exc:
            db.rollback()
            logger.exception(
                "Error processing scheduled task %d for vessel %s (MMSI %s)",
                task_id, vessel.vessel_name, mmsi,
            )
            result.status = "error"
            result.error_kind = type(exc).__name__
            result.error = str(exc)
        return result


_scheduler: TrackingScheduler | None = None


def get_scheduler() -> TrackingScheduler:
    """Process-wide scheduler bound to the application's session factory."""
    global _scheduler
    if _scheduler is None:
        from seatime.database import SessionLocal
        _scheduler = TrackingScheduler(SessionLocal)
    return _scheduler
