"""
Tests for the room status service.

This module covers:
- Status payload counts and ordering
- Occupancy recomputed per request while the timetable cache is warm
- Stale timetable served with lastError when a refresh fails
- Per-day errors and a bounded timetable cache
- Availability check responses and error codes
"""

import pytest
from fastapi.testclient import TestClient

from campus_live import main
from campus_live.config import settings

from tests.helpers import at, room, window


class Source:
    """Timetable source stand-in that can be switched to failing."""

    def __init__(self, timetables):
        self.timetables = timetables
        self.error = None
        self.calls = 0

    def __call__(self, day):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.timetables


@pytest.fixture
def now():
    return {"value": at(9, 45)}


@pytest.fixture
def source():
    return Source(
        [
            room("room-b", window("b1", at(9, 30), at(10), resource_id="room-b"), name="Salle B"),
            room(
                "room-a",
                window("a1", at(9), at(10)),
                window("a2", at(10, 15), at(11)),
                name="Amphi",
            ),
            room("room-c", name="Cuisine"),
        ]
    )


@pytest.fixture
def client(source, now):
    main.reset_cache()
    main.app.dependency_overrides[main.get_timetable_source] = lambda: source
    main.app.dependency_overrides[main.get_now] = lambda: now["value"]
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
    main.reset_cache()


class TestStatus:
    def test_counts_and_order(self, client):
        body = client.get("/api/rooms/status", params={"date": "2025-03-10"}).json()

        assert body["date"] == "2025-03-10"
        assert body["generatedAt"] == "2025-03-10T09:45:00Z"
        assert body["occupiedCount"] == 2
        assert body["freeCount"] == 1
        assert body["totalWindows"] == 3
        assert body["lastError"] is None
        assert [i["roomName"] for i in body["items"]] == ["Amphi", "Cuisine", "Salle B"]

    def test_room_item(self, client):
        body = client.get("/api/rooms/status").json()
        amphi = body["items"][0]
        assert amphi["roomId"] == "room-a"
        assert amphi["isOccupied"] is True
        assert amphi["countdown"] == "15m"
        assert amphi["activeWindowId"] == "a1"
        assert amphi["nextWindowId"] == "a2"
        assert [w["status"] for w in amphi["windows"]] == ["LIVE", "UPCOMING"]
        assert amphi["windows"][0]["start"] == "2025-03-10T09:00:00Z"

    def test_free_room_forecast(self, client, now):
        now["value"] = at(10, 0)
        body = client.get("/api/rooms/status").json()
        amphi = body["items"][0]
        assert amphi["isOccupied"] is False
        assert amphi["minutesToTransition"] == 15
        assert amphi["warn"] is True
        assert amphi["countdown"] is None

    def test_recomputed_on_each_request(self, client, source, now):
        first = client.get("/api/rooms/status").json()
        now["value"] = at(11, 30)
        second = client.get("/api/rooms/status").json()
        assert first["occupiedCount"] == 2
        assert second["occupiedCount"] == 0
        assert source.calls == 1

    def test_source_failure_without_cache(self, client, source):
        source.error = RuntimeError("institute API down")
        response = client.get("/api/rooms/status")
        assert response.status_code == 502
        assert "institute API down" in response.json()["detail"]

    def test_stale_cache_served_on_failure(self, client, source, monkeypatch):
        assert client.get("/api/rooms/status").status_code == 200
        monkeypatch.setattr(settings, "refresh_seconds", 0)
        source.error = RuntimeError("timeout")

        body = client.get("/api/rooms/status").json()

        assert body["occupiedCount"] == 2
        assert body["lastError"] == "TIMETABLE_ERROR: timeout"
        assert source.calls == 2

    def test_last_error_is_per_day(self, client, source, monkeypatch):
        assert client.get("/api/rooms/status", params={"date": "2025-03-10"}).status_code == 200
        monkeypatch.setattr(settings, "refresh_seconds", 0)
        source.error = RuntimeError("timeout")
        stale = client.get("/api/rooms/status", params={"date": "2025-03-10"}).json()
        assert stale["lastError"] == "TIMETABLE_ERROR: timeout"

        monkeypatch.setattr(settings, "refresh_seconds", 60)
        source.error = None
        other = client.get("/api/rooms/status", params={"date": "2025-03-11"}).json()
        assert other["lastError"] is None

    def test_cached_days_are_bounded(self, client, source, monkeypatch):
        monkeypatch.setattr(settings, "cache_max_days", 2)
        for day in ("2025-03-10", "2025-03-11", "2025-03-12"):
            assert client.get("/api/rooms/status", params={"date": day}).status_code == 200
        assert [d.isoformat() for d in main.cached_days()] == ["2025-03-11", "2025-03-12"]

    def test_recently_used_day_survives_eviction(self, client, source, monkeypatch):
        monkeypatch.setattr(settings, "cache_max_days", 2)
        client.get("/api/rooms/status", params={"date": "2025-03-10"})
        client.get("/api/rooms/status", params={"date": "2025-03-11"})
        client.get("/api/rooms/status", params={"date": "2025-03-10"})
        client.get("/api/rooms/status", params={"date": "2025-03-12"})
        assert [d.isoformat() for d in main.cached_days()] == ["2025-03-10", "2025-03-12"]
        assert source.calls == 3


class TestAvailability:
    def test_conflicts_reported(self, client):
        response = client.get(
            "/api/rooms/room-a/availability",
            params={"start": "2025-03-10T09:30:00Z", "end": "2025-03-10T10:30:00Z"},
        )
        body = response.json()
        assert response.status_code == 200
        assert body["available"] is False
        assert [w["id"] for w in body["conflicts"]] == ["a1", "a2"]

    def test_back_to_back_is_free(self, client):
        body = client.get(
            "/api/rooms/room-a/availability",
            params={"start": "2025-03-10T10:00:00Z", "end": "2025-03-10T10:15:00Z"},
        ).json()
        assert body["available"] is True
        assert body["conflicts"] == []

    def test_default_duration_when_end_missing(self, client):
        body = client.get(
            "/api/rooms/room-c/availability", params={"start": "2025-03-10T12:00:00Z"}
        ).json()
        assert body["requested_end"] == "2025-03-10T13:30:00Z"

    def test_naive_end_read_as_utc(self, client):
        response = client.get(
            "/api/rooms/room-a/availability",
            params={"start": "2025-03-10T10:00:00Z", "end": "2025-03-10T11:00:00"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["available"] is False
        assert [w["id"] for w in body["conflicts"]] == ["a2"]

    def test_naive_end_before_aware_start(self, client):
        response = client.get(
            "/api/rooms/room-a/availability",
            params={"start": "2025-03-10T12:00:00Z", "end": "2025-03-10T11:00:00"},
        )
        assert response.status_code == 400

    def test_unknown_room(self, client):
        response = client.get("/api/rooms/nowhere/availability", params={"start": "2025-03-10T12:00:00Z"})
        assert response.status_code == 404

    def test_end_before_start(self, client):
        response = client.get(
            "/api/rooms/room-a/availability",
            params={"start": "2025-03-10T12:00:00Z", "end": "2025-03-10T11:00:00Z"},
        )
        assert response.status_code == 400


def test_healthz(client):
    body = client.get("/healthz").json()
    assert body["ok"] is True
