"""API endpoint tests: MagicMock sessions for 404 paths, in-memory SQLite for flows."""
from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from conftest import add_check
from seatime.models.base import SeaTimeStatusEnum
from seatime.models.position_check import PositionCheck
from seatime.models.sea_time_entry import SeaTimeEntry
from seatime.models.tracking_task import TrackingTask
from seatime.modules.ais_client import (
    AISAuthError,
    AISConnectionError,
    AISRateLimitError,
    VesselNotFoundError,
)
from seatime.modules.ais_normalize import AISPosition
from seatime.modules.movement_analyzer import analyze
from seatime.modules.sea_time_policy import SeaTimePolicy
from seatime.modules.sea_time_reconciler import ReconcileReason, ScheduledEntryPolicy
from seatime.utils.clock import utcnow


USER = {"X-User-Id": "user-1"}


# ---------------------------------------------------------------------------
# Not-found paths (MagicMock session)
# ---------------------------------------------------------------------------


class TestNotFound:
    @pytest.mark.parametrize("method,path", [
        ("put", "/api/v1/vessels/999/activate"),
        ("delete", "/api/v1/vessels/999"),
        ("get", "/api/v1/vessels/999/sea-time"),
        ("post", "/api/v1/ais/check/999"),
        ("get", "/api/v1/ais/status/999"),
        ("get", "/api/v1/ais/analysis/999"),
        ("put", "/api/v1/sea-time/999/confirm"),
        ("put", "/api/v1/sea-time/999/reject"),
        ("delete", "/api/v1/sea-time/999"),
    ])
    def test_missing_resource_404(self, api_client, method, path):
        resp = getattr(api_client, method)(path)
        assert resp.status_code == 404

    def test_schedule_unknown_vessel_404(self, api_client):
        resp = api_client.post("/api/v1/vessels/999/tracking", json={"interval_hours": 2})
        assert resp.status_code == 404

    def test_toggle_unknown_task_404(self, api_client):
        resp = api_client.patch("/api/v1/tracking/tasks/999", json={"is_active": False})
        assert resp.status_code == 404


class TestHealth:
    def test_health(self, api_client):
        resp = api_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["scheduler_running"] is False
        assert data["tick_in_progress"] is False


# ---------------------------------------------------------------------------
# Vessels
# ---------------------------------------------------------------------------


class TestVessels:
    def test_create_and_list(self, sqlite_client):
        resp = sqlite_client.post(
            "/api/v1/vessels",
            json={"mmsi": "235000010", "vessel_name": "ARGO", "is_active": True},
            headers=USER,
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["mmsi"] == "235000010"
        assert body["user_id"] == "user-1"
        assert body["is_active"] is True

        listed = sqlite_client.get("/api/v1/vessels", headers=USER).json()
        assert [v["vessel_name"] for v in listed] == ["ARGO"]
        assert sqlite_client.get("/api/v1/vessels", headers={"X-User-Id": "user-2"}).json() == []

    def test_duplicate_is_409(self, sqlite_client):
        payload = {"mmsi": "235000010", "vessel_name": "ARGO"}
        assert sqlite_client.post("/api/v1/vessels", json=payload, headers=USER).status_code == 201
        assert sqlite_client.post("/api/v1/vessels", json=payload, headers=USER).status_code == 409

    @pytest.mark.parametrize("mmsi", ["12345", "23500001X", "2350000100"])
    def test_invalid_mmsi_422(self, sqlite_client, mmsi):
        resp = sqlite_client.post("/api/v1/vessels", json={"mmsi": mmsi, "vessel_name": "ARGO"})
        assert resp.status_code == 422

    def test_activate(self, sqlite_client, vessel):
        other = sqlite_client.post(
            "/api/v1/vessels", json={"mmsi": "235000010", "vessel_name": "ARGO"}, headers=USER
        ).json()
        resp = sqlite_client.put(f"/api/v1/vessels/{other['vessel_id']}/activate")
        assert resp.status_code == 200
        assert resp.json()["is_active"] is True
        active = [v for v in sqlite_client.get("/api/v1/vessels").json() if v["is_active"]]
        assert [v["vessel_id"] for v in active] == [other["vessel_id"]]

    def test_delete(self, sqlite_client, vessel):
        resp = sqlite_client.delete(f"/api/v1/vessels/{vessel.vessel_id}")
        assert resp.status_code == 200
        assert resp.json()["deleted"] is True


# ---------------------------------------------------------------------------
# Tracking
# ---------------------------------------------------------------------------


class TestTracking:
    def test_schedule_replaces(self, sqlite_client, db, vessel):
        url = f"/api/v1/vessels/{vessel.vessel_id}/tracking"
        first = sqlite_client.post(url, json={"interval_hours": 2})
        second = sqlite_client.post(url, json={"interval_hours": 4})

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["interval_hours"] == 4
        assert db.query(TrackingTask).count() == 1

    @pytest.mark.parametrize("interval", [0, 25])
    def test_interval_bounds(self, sqlite_client, vessel, interval):
        resp = sqlite_client.post(f"/api/v1/vessels/{vessel.vessel_id}/tracking", json={"interval_hours": interval})
        assert resp.status_code == 422

    def test_list_and_toggle(self, sqlite_client, vessel):
        task = sqlite_client.post(f"/api/v1/vessels/{vessel.vessel_id}/tracking", json={}).json()
        assert task["interval_hours"] == 2

        tasks = sqlite_client.get("/api/v1/tracking/tasks", headers=USER).json()
        assert [t["task_id"] for t in tasks] == [task["task_id"]]

        resp = sqlite_client.patch(f"/api/v1/tracking/tasks/{task['task_id']}", json={"is_active": False})
        assert resp.json()["is_active"] is False

    def test_verify(self, sqlite_client, vessel):
        resp = sqlite_client.post("/api/v1/tracking/verify", json={"interval_hours": 3})
        assert resp.status_code == 200
        assert resp.json()["tasks_created"] == 1

    def test_run_tick_conflict(self, sqlite_client):
        busy = MagicMock()
        busy.run_tick.return_value = None
        with patch("seatime.modules.scheduler.get_scheduler", return_value=busy):
            resp = sqlite_client.post("/api/v1/tracking/run")
        assert resp.status_code == 409


# ---------------------------------------------------------------------------
# AIS checks
# ---------------------------------------------------------------------------


def _position(lat=50.0, speed=12.0):
    return AISPosition(
        mmsi="235009802", latitude=lat, longitude=-1.0, speed_knots=speed,
        is_moving=speed > 2.0, timestamp=datetime(2024, 6, 1, 12, 0), timestamp_trusted=True,
    )


class TestManualCheck:
    def test_stores_check(self, sqlite_client, db, vessel):
        with patch("seatime.modules.ais_client.fetch_position", return_value=_position()) as mock_fetch:
            resp = sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["is_moving"] is True
        assert body["speed_knots"] == 12.0
        assert body["sea_time_entry_created"] is False
        assert body["timestamp_trusted"] is True
        assert mock_fetch.call_args.args[0] == "235009802"
        assert db.query(PositionCheck).count() == 1

    def test_second_moving_check_opens_entry(self, sqlite_client, db, vessel):
        with patch("seatime.modules.ais_client.fetch_position", return_value=_position()):
            sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")
            resp = sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")

        assert resp.json()["sea_time_entry_created"] is True
        entry = db.query(SeaTimeEntry).one()
        assert resp.json()["entry_id"] == entry.entry_id
        assert entry.end_time is None

    @pytest.mark.parametrize("error,status,code", [
        (AISAuthError("bad key", mmsi="235009802", status_code=401), 502, "ais_auth"),
        (VesselNotFoundError("unknown", mmsi="235009802", status_code=404), 404, "vessel_not_found_at_provider"),
        (AISConnectionError("refused", mmsi="235009802"), 503, "ais_unreachable"),
    ])
    def test_provider_errors_mapped(self, sqlite_client, db, vessel, error, status, code):
        with patch("seatime.modules.ais_client.fetch_position", side_effect=error):
            resp = sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")

        assert resp.status_code == status
        assert resp.json()["code"] == code
        # A failed poll never records a "not moving" check
        assert db.query(PositionCheck).count() == 0

    def test_rate_limit_sets_retry_after(self, sqlite_client, vessel):
        error = AISRateLimitError("slow down", mmsi="235009802", retry_after=30)
        with patch("seatime.modules.ais_client.fetch_position", side_effect=error):
            resp = sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")
        assert resp.status_code == 429
        assert resp.headers["Retry-After"] == "30"

    def test_status(self, sqlite_client, vessel):
        with patch("seatime.modules.ais_client.fetch_position", return_value=_position(speed=0.5)):
            sqlite_client.post(f"/api/v1/ais/check/{vessel.vessel_id}")

        body = sqlite_client.get(f"/api/v1/ais/status/{vessel.vessel_id}").json()
        assert body["is_moving"] is False
        assert body["current_check"]["speed_knots"] == 0.5
        assert len(body["recent_checks"]) == 1

    def test_analysis_replay_writes_nothing(self, sqlite_client, db, vessel):
        now = utcnow()
        for hours_ago, lat in ((4, 50.0), (2, 50.2), (0, 50.4)):
            db.add(PositionCheck(
                user_id="user-1", vessel_id=vessel.vessel_id, check_time=now - timedelta(hours=hours_ago, minutes=1),
                is_moving=True, speed_knots=10.0, latitude=lat, longitude=-1.0,
            ))
        db.commit()

        body = sqlite_client.get(f"/api/v1/ais/analysis/{vessel.vessel_id}").json()
        assert body["total_underway_hours"] == 4.0
        assert body["reconcile_reason"] in ("created", "day_has_entry")
        assert db.query(SeaTimeEntry).count() == 0


# ---------------------------------------------------------------------------
# Sea time review
# ---------------------------------------------------------------------------


def _entry(db, vessel, **kwargs) -> SeaTimeEntry:
    values = dict(
        user_id="user-1",
        vessel_id=vessel.vessel_id,
        start_time=datetime(2024, 6, 1, 6, 0),
        end_time=datetime(2024, 6, 1, 10, 0),
        duration_hours=4.0,
        sea_days=1,
        status=SeaTimeStatusEnum.PENDING,
    )
    values.update(kwargs)
    entry = SeaTimeEntry(**values)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


class TestSeaTimeReview:
    def test_list_and_pending(self, sqlite_client, db, vessel):
        _entry(db, vessel)
        _entry(db, vessel, start_time=datetime(2024, 6, 2, 6, 0), status=SeaTimeStatusEnum.CONFIRMED)

        assert len(sqlite_client.get("/api/v1/sea-time", headers=USER).json()) == 2
        pending = sqlite_client.get("/api/v1/sea-time/pending", headers=USER).json()
        assert [e["status"] for e in pending] == ["pending"]
        confirmed = sqlite_client.get("/api/v1/sea-time", params={"status": "confirmed"}).json()
        assert len(confirmed) == 1

    def test_confirm(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel)
        resp = sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/confirm", json={"notes": "Solent passage"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "confirmed"
        assert body["sea_days"] == 1
        assert body["notes"] == "Solent passage"

    def test_confirm_short_entry_has_no_sea_day(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel, duration_hours=2.5, end_time=datetime(2024, 6, 1, 8, 30))
        body = sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/confirm").json()
        assert body["sea_days"] == 0

    def test_confirm_open_entry_closes_it(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel, end_time=None, duration_hours=None, sea_days=None)
        body = sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/confirm").json()
        assert body["end_time"] is not None
        assert body["duration_hours"] > 0

    def test_reviewed_entry_cannot_be_reviewed_again(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel)
        assert sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/reject").status_code == 200
        assert sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/confirm").status_code == 409

    def test_reject_clears_sea_days(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel)
        body = sqlite_client.put(f"/api/v1/sea-time/{entry.entry_id}/reject").json()
        assert body["status"] == "rejected"
        assert body["sea_days"] is None

    def test_delete(self, sqlite_client, db, vessel):
        entry = _entry(db, vessel)
        assert sqlite_client.delete(f"/api/v1/sea-time/{entry.entry_id}").status_code == 200
        assert db.query(SeaTimeEntry).count() == 0

    def test_vessel_sea_time(self, sqlite_client, db, vessel):
        _entry(db, vessel)
        resp = sqlite_client.get(f"/api/v1/vessels/{vessel.vessel_id}/sea-time")
        assert len(resp.json()) == 1


# ---------------------------------------------------------------------------
# Logbook
# ---------------------------------------------------------------------------


class TestLogbook:
    def test_chronological_with_vessel(self, sqlite_client, db, vessel):
        _entry(db, vessel, start_time=datetime(2024, 6, 3, 6, 0))
        _entry(db, vessel, start_time=datetime(2024, 6, 1, 6, 0))

        body = sqlite_client.get("/api/v1/logbook", headers=USER).json()

        assert [e["start_time"][:10] for e in body] == ["2024-06-01", "2024-06-03"]
        assert body[0]["vessel"]["mmsi"] == "235009802"
        assert body[0]["vessel"]["vessel_name"] == "NORTHERN STAR"

    def test_date_range_filter(self, sqlite_client, db, vessel):
        for day in (1, 2, 3, 4):
            _entry(db, vessel, start_time=datetime(2024, 6, day, 6, 0))

        body = sqlite_client.get(
            "/api/v1/logbook",
            params={"start_date": "2024-06-02T00:00:00", "end_date": "2024-06-03T23:59:59"},
            headers=USER,
        ).json()

        assert [e["start_time"][:10] for e in body] == ["2024-06-02", "2024-06-03"]

    def test_other_users_hidden(self, sqlite_client, db, vessel):
        _entry(db, vessel, user_id="user-2")
        assert sqlite_client.get("/api/v1/logbook", headers=USER).json() == []

    def test_manual_entry_created_confirmed(self, sqlite_client, db, vessel):
        resp = sqlite_client.post("/api/v1/logbook/manual-entry", headers=USER, json={
            "vessel_id": vessel.vessel_id,
            "start_time": "2024-06-01T08:00:00Z",
            "end_time": "2024-06-01T13:30:00Z",
            "notes": "Delivery trip",
            "start_latitude": 50.8, "start_longitude": -1.3,
            "end_latitude": 50.1, "end_longitude": -1.9,
        })

        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "confirmed"
        assert body["duration_hours"] == 5.5
        assert body["sea_days"] == 1
        assert body["mca_compliant"] is True
        assert body["distance_nm"] > 0
        assert body["user_id"] == "user-1"
        assert body["vessel"]["vessel_id"] == vessel.vessel_id
        stored = db.query(SeaTimeEntry).one()
        assert stored.start_time == datetime(2024, 6, 1, 8, 0)
        assert stored.notes == "Delivery trip"

    def test_manual_entry_without_end_is_open(self, sqlite_client, vessel):
        body = sqlite_client.post("/api/v1/logbook/manual-entry", headers=USER, json={
            "vessel_id": vessel.vessel_id, "start_time": "2024-06-01T08:00:00",
        }).json()
        assert body["end_time"] is None
        assert body["duration_hours"] is None
        assert body["sea_days"] is None

    def test_manual_entry_end_before_start_422(self, sqlite_client, db, vessel):
        resp = sqlite_client.post("/api/v1/logbook/manual-entry", headers=USER, json={
            "vessel_id": vessel.vessel_id,
            "start_time": "2024-06-01T08:00:00",
            "end_time": "2024-06-01T08:00:00",
        })
        assert resp.status_code == 422
        assert db.query(SeaTimeEntry).count() == 0

    def test_manual_entry_unknown_vessel_404(self, sqlite_client):
        resp = sqlite_client.post("/api/v1/logbook/manual-entry", headers=USER, json={
            "vessel_id": 999, "start_time": "2024-06-01T08:00:00",
        })
        assert resp.status_code == 404

    def test_manual_entry_blocks_scheduled_entry_same_day(self, sqlite_client, db, vessel):
        sqlite_client.post("/api/v1/logbook/manual-entry", headers=USER, json={
            "vessel_id": vessel.vessel_id,
            "start_time": "2024-06-01T05:00:00",
            "end_time": "2024-06-01T06:00:00",
        })
        t0 = datetime(2024, 6, 1, 8, 0)
        checks = [
            add_check(db, vessel, t0, 50.0, -1.0),
            add_check(db, vessel, t0 + timedelta(hours=2), 50.2, -1.0),
            add_check(db, vessel, t0 + timedelta(hours=4), 50.4, -1.0),
        ]
        policy = SeaTimePolicy()
        analysis = analyze(checks, t0 + timedelta(hours=4), policy)

        decision = ScheduledEntryPolicy(policy).reconcile(db, vessel, analysis)

        assert decision.reason == ReconcileReason.DAY_HAS_ENTRY
        assert db.query(SeaTimeEntry).count() == 1


class TestApiKeyMiddleware:
    def test_key_required_when_configured(self, api_client):
        from seatime.config import settings

        with patch.object(settings, "SEATIME_API_KEY", "s3cret"):
            assert api_client.get("/api/v1/vessels").status_code == 401
            assert api_client.get("/health").status_code == 200
            ok = api_client.get("/api/v1/vessels", headers={"X-API-Key": "s3cret"})
            assert ok.status_code == 200
