"""Tests for movement window analysis over position checks."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from seatime.modules.movement_analyzer import analyze
from seatime.modules.sea_time_policy import SeaTimePolicy


POLICY = SeaTimePolicy()
T0 = datetime(2024, 6, 1, 6, 0)


@dataclass
class Check:
    check_time: datetime
    latitude: Optional[float]
    longitude: Optional[float]
    check_id: Optional[int] = None


def _checks(*points):
    """points: (hours after T0, lat, lon)."""
    return [Check(T0 + timedelta(hours=h), lat, lon, check_id=i + 1) for i, (h, lat, lon) in enumerate(points)]


class TestTooFewChecks:
    def test_no_checks(self):
        result = analyze([], T0, POLICY)
        assert result.total_underway_hours == 0
        assert not result.has_movement
        assert result.checks_analyzed == 0

    def test_single_check(self):
        result = analyze(_checks((0, 50.0, -1.0)), T0, POLICY)
        assert result.total_underway_hours == 0
        assert result.start_check is None
        assert result.end_check is None


class TestWindowBounds:
    def test_exactly_one_hour_qualifies(self):
        result = analyze(_checks((0, 50.0, -1.0), (1, 50.3, -1.0)), T0 + timedelta(hours=1), POLICY)
        assert result.total_underway_hours == pytest.approx(1.0)

    def test_exactly_three_hours_qualifies(self):
        result = analyze(_checks((0, 50.0, -1.0), (3, 50.3, -1.0)), T0 + timedelta(hours=3), POLICY)
        assert result.total_underway_hours == pytest.approx(3.0)

    def test_just_under_one_hour_skipped(self):
        checks = [Check(T0, 50.0, -1.0), Check(T0 + timedelta(minutes=59), 51.0, -1.0)]
        result = analyze(checks, T0 + timedelta(hours=1), POLICY)
        assert result.pairs_evaluated == 0
        assert result.total_underway_hours == 0

    def test_just_over_three_hours_skipped(self):
        checks = [Check(T0, 50.0, -1.0), Check(T0 + timedelta(hours=3, minutes=1), 51.0, -1.0)]
        result = analyze(checks, T0 + timedelta(hours=4), POLICY)
        assert result.pairs_evaluated == 0
        assert not result.has_movement

    def test_gap_pairs_are_not_bridged(self):
        """A 4h gap is skipped outright; neighbouring windows are not merged across it."""
        checks = _checks((0, 50.0, -1.0), (2, 50.2, -1.0), (6, 50.6, -1.0))
        result = analyze(checks, T0 + timedelta(hours=6), POLICY)
        assert result.total_underway_hours == pytest.approx(2.0)
        assert len(result.windows) == 1


class TestDisplacement:
    def test_exact_threshold_is_not_movement(self):
        """50.0 -> 50.1 is exactly 0.1 degrees and must not count."""
        result = analyze(_checks((0, 50.0, -1.0), (2, 50.1, -1.0)), T0 + timedelta(hours=2), POLICY)
        assert result.pairs_evaluated == 1
        assert not result.has_movement

    def test_just_over_threshold_is_movement(self):
        result = analyze(_checks((0, 50.0, -1.0), (2, 50.100001, -1.0)), T0 + timedelta(hours=2), POLICY)
        assert result.has_movement

    def test_longitude_alone_counts(self):
        result = analyze(_checks((0, 50.0, -1.0), (2, 50.0, -1.5)), T0 + timedelta(hours=2), POLICY)
        assert result.windows[0].max_delta_degrees == pytest.approx(0.5)

    def test_identical_positions_not_moving(self):
        result = analyze(_checks((0, 50.0, -1.0), (2, 50.0, -1.0)), T0 + timedelta(hours=2), POLICY)
        assert result.total_underway_hours == 0


class TestMissingFix:
    def test_pair_with_missing_coordinates_skipped(self):
        checks = _checks((0, 50.0, -1.0), (2, None, None), (4, 50.4, -1.0))
        result = analyze(checks, T0 + timedelta(hours=4), POLICY)
        assert result.pairs_evaluated == 0
        assert result.total_underway_hours == 0

    def test_missing_longitude_only_skipped(self):
        checks = _checks((0, 50.0, -1.0), (2, 50.5, None))
        result = analyze(checks, T0 + timedelta(hours=2), POLICY)
        assert not result.has_movement


class TestLookback:
    def test_checks_older_than_24h_ignored(self):
        as_of = T0 + timedelta(hours=26)
        checks = _checks((0, 50.0, -1.0), (2, 51.0, -1.0), (24, 52.0, -1.0), (26, 53.0, -1.0))
        result = analyze(checks, as_of, POLICY)
        assert result.checks_analyzed == 3
        assert result.total_underway_hours == pytest.approx(2.0)

    def test_future_checks_ignored(self):
        checks = _checks((0, 50.0, -1.0), (2, 51.0, -1.0))
        result = analyze(checks, T0 + timedelta(hours=1), POLICY)
        assert result.checks_analyzed == 1

    def test_unsorted_input_is_ordered(self):
        checks = list(reversed(_checks((0, 50.0, -1.0), (2, 50.2, -1.0), (4, 50.4, -1.0))))
        result = analyze(checks, T0 + timedelta(hours=4), POLICY)
        assert result.total_underway_hours == pytest.approx(4.0)
        assert result.start_check.check_time == T0

    def test_aware_as_of_is_accepted(self):
        checks = _checks((0, 50.0, -1.0), (2, 50.2, -1.0))
        as_of = (T0 + timedelta(hours=2)).replace(tzinfo=timezone.utc)
        assert analyze(checks, as_of, POLICY).total_underway_hours == pytest.approx(2.0)


class TestEndToEnd:
    def test_three_checks_two_hours_apart(self):
        """50.0 -> 50.2 -> 50.4 at 2h spacing is 4 underway hours."""
        checks = _checks((0, 50.0, -1.0), (2, 50.2, -1.0), (4, 50.4, -1.0))
        result = analyze(checks, T0 + timedelta(hours=4), POLICY)

        assert result.total_underway_hours == pytest.approx(4.0)
        assert result.total_underway_hours_rounded == 4.0
        assert len(result.windows) == 2
        assert result.start_check.latitude == 50.0
        assert result.end_check.latitude == 50.4

    def test_first_and_last_window_bound_the_period(self):
        checks = _checks(
            (0, 50.0, -1.0),
            (2, 50.5, -1.0),   # underway
            (4, 50.5, -1.0),   # stationary
            (6, 51.0, -1.0),   # underway
        )
        result = analyze(checks, T0 + timedelta(hours=6), POLICY)
        assert result.total_underway_hours == pytest.approx(4.0)
        assert result.start_check.check_id == 1
        assert result.end_check.check_id == 4

    def test_to_dict_shape(self):
        checks = _checks((0, 50.0, -1.0), (2, 50.2, -1.0))
        data = analyze(checks, T0 + timedelta(hours=2), POLICY).to_dict()
        assert data["total_underway_hours"] == 2.0
        assert data["underway_periods"][0]["duration_hours"] == 2.0
        assert data["start"]["check_id"] == 1
        assert data["end"]["latitude"] == 50.2

    def test_custom_thresholds(self):
        policy = SeaTimePolicy(window_min_hours=0.5, window_max_hours=1.0, displacement_degrees=0.01)
        checks = [Check(T0, 50.0, -1.0), Check(T0 + timedelta(minutes=30), 50.02, -1.0)]
        result = analyze(checks, T0 + timedelta(hours=1), policy)
        assert result.total_underway_hours == pytest.approx(0.5)
