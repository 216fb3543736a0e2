"""Movement window analysis over the trailing 24 hours of position checks.

Algorithm:
  1. Keep checks with check_time in [as_of - lookback, as_of], oldest first.
     Fewer than two checks cannot show movement.
  2. Walk adjacent pairs (i, i+1). Pairs where either end lacks a fix are
     skipped. Pairs whose spacing falls outside [window_min_hours,
     window_max_hours] (inclusive) are skipped entirely: never stretched or
     merged with neighbours.
  3. For a qualifying pair, max_delta = max(|dlat|, |dlon|) in degrees. The
     window is underway when max_delta > displacement_degrees (strict), and
     its spacing is added to the underway total.
  4. The first underway window's start check and the last underway window's
     end check bound the resulting sea-time period.

The displacement test is a coarse proxy in raw degrees, not a distance: 0.1°
of longitude shrinks towards the poles.

The analyzer is shared by the scheduled reconciler, the manual check endpoint
and the diagnostic replay endpoint; it reads nothing from the database.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol, Sequence

from seatime.modules.sea_time_policy import SeaTimePolicy, load_policy
from seatime.utils.clock import to_naive_utc
from seatime.utils.geo import degree_delta

logger = logging.getLogger(__name__)


class CheckLike(Protocol):
    check_time: datetime
    latitude: Optional[float]
    longitude: Optional[float]


@dataclass
class UnderwayWindow:
    """An adjacent pair of checks that showed real displacement."""
    start_index: int
    end_index: int
    start_check: Any
    end_check: Any
    duration_hours: float
    max_delta_degrees: float

    @property
    def start_time(self) -> datetime:
        return self.start_check.check_time

    @property
    def end_time(self) -> datetime:
        return self.end_check.check_time


@dataclass
class MovementAnalysis:
    as_of: datetime
    windows: list[UnderwayWindow] = field(default_factory=list)
    total_underway_hours: float = 0.0
    checks_analyzed: int = 0
    pairs_evaluated: int = 0

    @property
    def has_movement(self) -> bool:
        return bool(self.windows)

    @property
    def start_check(self) -> Any:
        return self.windows[0].start_check if self.windows else None

    @property
    def end_check(self) -> Any:
        return self.windows[-1].end_check if self.windows else None

    @property
    def total_underway_hours_rounded(self) -> float:
        return round(self.total_underway_hours, 2)

    def to_dict(self) -> dict:
        def _check(c: Any) -> Optional[dict]:
            if c is None:
                return None
            return {
                "check_id": getattr(c, "check_id", None),
                "check_time": c.check_time.isoformat(),
                "latitude": c.latitude,
                "longitude": c.longitude,
            }

        return {
            "as_of": self.as_of.isoformat(),
            "checks_analyzed": self.checks_analyzed,
            "pairs_evaluated": self.pairs_evaluated,
            "total_underway_hours": self.total_underway_hours_rounded,
            "underway_periods": [
                {
                    "start_time": w.start_time.isoformat(),
                    "end_time": w.end_time.isoformat(),
                    "duration_hours": round(w.duration_hours, 2),
                    "max_delta_degrees": w.max_delta_degrees,
                }
                for w in self.windows
            ],
            "start": _check(self.start_check),
            "end": _check(self.end_check),
        }


def _within_lookback(checks: Sequence[CheckLike], as_of: datetime, lookback_hours: float) -> list:
    since = as_of - timedelta(hours=lookback_hours)
    in_range = [c for c in checks if since <= to_naive_utc(c.check_time) <= as_of]
    return sorted(in_range, key=lambda c: to_naive_utc(c.check_time))


def analyze(
    checks: Sequence[CheckLike],
    as_of: datetime,
    policy: SeaTimePolicy | None = None,
) -> MovementAnalysis:
    """Find underway windows in the trailing lookback of ``as_of``.

    ``checks`` is normally already limited to the lookback and sorted; the
    filter and sort here make the function safe to call on raw history too.
    """
    policy = policy or load_policy()
    as_of = to_naive_utc(as_of)
    ordered = _within_lookback(checks, as_of, policy.lookback_hours)
    analysis = MovementAnalysis(as_of=as_of, checks_analyzed=len(ordered))

    if len(ordered) < 2:
        logger.debug("Only %d check(s) in the last %sh: no movement analysis", len(ordered), policy.lookback_hours)
        return analysis

    for i in range(len(ordered) - 1):
        start, end = ordered[i], ordered[i + 1]
        if start.latitude is None or start.longitude is None or end.latitude is None or end.longitude is None:
            continue

        time_diff_hours = (to_naive_utc(end.check_time) - to_naive_utc(start.check_time)).total_seconds() / 3600
        if not (policy.window_min_hours <= time_diff_hours <= policy.window_max_hours):
            continue

        analysis.pairs_evaluated += 1
        max_delta = max(
            degree_delta(start.latitude, end.latitude),
            degree_delta(start.longitude, end.longitude),
        )
        moved = max_delta > policy.displacement_degrees
        logger.debug(
            "Window %d-%d: %.2fh, delta=%.4f°, movement=%s",
            i, i + 1, time_diff_hours, max_delta, "YES" if moved else "NO",
        )
        if moved:
            analysis.windows.append(
                UnderwayWindow(
                    start_index=i,
                    end_index=i + 1,
                    start_check=start,
                    end_check=end,
                    duration_hours=time_diff_hours,
                    max_delta_degrees=max_delta,
                )
            )
            analysis.total_underway_hours += time_diff_hours

    logger.info(
        "Movement analysis: %d checks, %d qualifying windows, %d underway, %.2f underway hours",
        analysis.checks_analyzed,
        analysis.pairs_evaluated,
        len(analysis.windows),
        analysis.total_underway_hours,
    )
    return analysis
