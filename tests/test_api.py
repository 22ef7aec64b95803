import pytest
from fastapi.testclient import TestClient

from booking_engine import config
from booking_engine.domain.bookings.locking import LocalLockManager
from booking_engine.main import create_app

from conftest import ExpiringLockManager, fixed_clock

WEEKDAYS = [
    {"day_of_week": d, "start_time": "09:00", "end_time": "17:00", "break_start": "12:00", "break_end": "13:00"}
    for d in range(1, 6)
]
CLIENT = {"name": "Grace Hopper", "email": "Grace@Example.com"}


@pytest.fixture
def make_client(engine):
    clients = []

    def build(lock_manager=None):
        app = create_app(engine=engine, lock_manager=lock_manager or LocalLockManager(), clock=fixed_clock())
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield build
    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def api(make_client):
    return make_client()


@pytest.fixture
def practice(api):
    """Practitioner with a weekday schedule and a 45 minute service, via the API"""
    practitioner = api.post("/practitioners", json={"name": "Dr. Ada", "email": "ada@example.com"}).json()
    pid = practitioner["id"]
    api.put(f"/practitioners/{pid}/schedule", json={"working_days": WEEKDAYS})
    service = api.post(
        f"/practitioners/{pid}/services",
        json={"name": "Consultation", "duration_minutes": 45, "price": 80},
    ).json()
    return pid, service["id"]


def book(api, pid, sid, start, client=CLIENT):
    return api.post(
        f"/practitioners/{pid}/bookings",
        json={"service_id": sid, "start_time": start, "client": client},
    )


def test_health(api):
    response = api.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "ok"
    assert response.json()["concurrency_strategy"] == "lock"


def test_practitioner_and_services(api):
    response = api.post("/practitioners", json={"name": "Dr. Ada", "email": "ada@example.com"})
    assert response.status_code == 201
    pid = response.json()["id"]
    assert response.json()["slot_granularity_minutes"] == config.DEFAULT_SLOT_GRANULARITY_MINUTES

    duplicate = api.post("/practitioners", json={"name": "Ada Again", "email": "ada@example.com"})
    assert duplicate.status_code == 422

    created = api.post(
        f"/practitioners/{pid}/services", json={"name": "Massage", "duration_minutes": 60, "price": 100}
    )
    assert created.status_code == 201
    sid = created.json()["id"]

    updated = api.patch(f"/services/{sid}", json={"price": 120})
    assert updated.json()["price"] == 120
    assert updated.json()["duration_minutes"] == 60

    assert api.delete(f"/services/{sid}").json()["is_active"] is False
    assert api.get(f"/practitioners/{pid}/services").json() == []
    assert len(api.get(f"/practitioners/{pid}/services", params={"include_inactive": True}).json()) == 1

    missing = api.get("/practitioners/9999")
    assert missing.status_code == 404
    assert missing.json()["error"] == "NOT_FOUND"


def test_schedule_endpoints(api, practice):
    pid, _ = practice

    schedule = api.get(f"/practitioners/{pid}/schedule").json()
    assert [d["day_of_week"] for d in schedule["working_days"]] == [1, 2, 3, 4, 5]

    bad = api.put(
        f"/practitioners/{pid}/schedule",
        json={"working_days": [{"day_of_week": 1, "start_time": "18:00", "end_time": "09:00"}]},
    )
    assert bad.status_code == 422
    assert bad.json()["error"] == "INVALID_SCHEDULE"

    blank = api.put(
        f"/practitioners/{pid}/schedule",
        json={"working_days": [{"day_of_week": 1, "start_time": "", "end_time": "17:00"}]},
    )
    assert blank.status_code == 422
    assert blank.json()["error"] == "VALIDATION_ERROR"
    assert len(api.get(f"/practitioners/{pid}/schedule").json()["working_days"]) == 5


def test_availability_then_booking(api, practice):
    pid, sid = practice

    response = api.get(
        f"/practitioners/{pid}/availability",
        params={"service_id": sid, "date_from": "2030-01-07", "date_to": "2030-01-07"},
    )
    assert response.status_code == 200
    slots = response.json()["slots"]
    assert len(slots) == 12
    assert slots[0] == {"start": "2030-01-07T09:00:00", "end": "2030-01-07T09:45:00"}

    created = book(api, pid, sid, slots[0]["start"])
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "PENDING"
    assert body["end_time"] == "2030-01-07T09:45:00"
    assert body["client_email"] == "grace@example.com"

    conflict = book(api, pid, sid, "2030-01-07T09:30:00")
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "BOOKING_CONFLICT"
    assert conflict.json()["details"]["conflicting_booking_id"] == body["id"]


def test_booking_validation_errors(api, practice):
    pid, sid = practice

    past = book(api, pid, sid, "2029-12-31T10:00:00")
    assert past.status_code == 422
    assert past.json()["error"] == "INVALID_INTERVAL"
    assert past.json()["details"]["reason"] == "cannot book in the past"

    closed = book(api, pid, sid, "2030-01-06T10:00:00")
    assert closed.json()["details"]["reason"] == "outside working hours"

    malformed = api.post(f"/practitioners/{pid}/bookings", json={"service_id": sid})
    assert malformed.status_code == 422
    assert malformed.json()["error"] == "VALIDATION_ERROR"

    assert book(api, pid, 9999, "2030-01-07T10:00:00").status_code == 404

    escaped_too_long = book(
        api, pid, sid, "2030-01-07T10:00:00", client={"name": "&" * 100, "email": "amp@example.com"}
    )
    assert escaped_too_long.status_code == 422
    assert escaped_too_long.json()["details"]["field"] == "client.name"


def test_timezone_aware_input_is_stored_as_utc(api, practice):
    pid, sid = practice

    created = book(api, pid, sid, "2030-01-07T11:00:00+01:00")

    assert created.status_code == 201
    assert created.json()["start_time"] == "2030-01-07T10:00:00"


def test_lifecycle_endpoints(api, practice):
    pid, sid = practice
    booking_id = book(api, pid, sid, "2030-01-07T10:00:00").json()["id"]

    assert api.post(f"/bookings/{booking_id}/confirm").json()["status"] == "CONFIRMED"

    again = api.post(f"/bookings/{booking_id}/confirm")
    assert again.status_code == 409
    assert again.json()["error"] == "INVALID_TRANSITION"

    moved = api.post(f"/bookings/{booking_id}/reschedule", json={"start_time": "2030-01-07T14:00:00"})
    assert moved.status_code == 200
    assert moved.json()["start_time"] == "2030-01-07T14:00:00"

    assert api.post(f"/bookings/{booking_id}/complete").json()["status"] == "COMPLETED"
    assert api.post(f"/bookings/{booking_id}/cancel").status_code == 409
    assert api.get(f"/bookings/{booking_id}").json()["status"] == "COMPLETED"
    assert api.get("/bookings/9999").status_code == 404


def test_bulk_status(api, practice):
    pid, sid = practice
    first = book(api, pid, sid, "2030-01-07T09:00:00").json()["id"]
    second = book(api, pid, sid, "2030-01-07T10:00:00").json()["id"]

    response = api.post("/bookings/bulk-status", json={"booking_ids": [first, second, 9999], "action": "cancel"})

    assert response.status_code == 200
    assert response.json()["updated"] == 2
    assert [r["result"] for r in response.json()["results"]] == ["ok", "ok", "not_found"]

    assert api.post("/bookings/bulk-status", json={"booking_ids": [first], "action": "archive"}).status_code == 422


def test_booking_lists_and_stats(api, practice):
    pid, sid = practice
    for start in ("2030-01-07T09:00:00", "2030-01-07T10:00:00", "2030-01-08T09:00:00"):
        book(api, pid, sid, start)

    listing = api.get(f"/practitioners/{pid}/bookings", params={"limit": 2}).json()
    assert listing["total"] == 3
    assert listing["pages"] == 2

    upcoming = api.get(f"/practitioners/{pid}/bookings/upcoming").json()
    assert [b["start_time"] for b in upcoming][0] == "2030-01-07T09:00:00"

    stats = api.get(f"/practitioners/{pid}/bookings/stats").json()
    assert stats["pending"] == 3
    assert stats["revenue"] == 0


def test_lost_lock_returns_retry_after(make_client, practice):
    pid, sid = practice
    flaky = make_client(lock_manager=ExpiringLockManager())

    response = book(flaky, pid, sid, "2030-01-07T10:00:00")

    assert response.status_code == 503
    assert response.json()["error"] == "TRANSIENT_ERROR"
    assert response.headers["Retry-After"] == "1"


def test_booking_rate_limit(api, practice, monkeypatch):
    pid, sid = practice
    monkeypatch.setattr(config, "RATE_LIMIT_ENABLED", True)
    limiter = api.app.state.rate_limiter
    for _ in range(config.BOOKING_RATE_LIMIT):
        limiter.check("booking_create:testclient", config.BOOKING_RATE_LIMIT, config.BOOKING_RATE_LIMIT_WINDOW_SECONDS)

    response = book(api, pid, sid, "2030-01-07T10:00:00")

    assert response.status_code == 429
    assert "Retry-After" in response.headers


def test_client_list(api, practice):
    pid, sid = practice
    first = book(api, pid, sid, "2030-01-07T09:00:00").json()["id"]
    book(api, pid, sid, "2030-01-07T10:00:00")
    book(api, pid, sid, "2030-01-07T14:00:00", client={"name": "Linus", "email": "linus@example.com"})
    api.post(f"/bookings/{first}/confirm")
    api.post(f"/bookings/{first}/complete")

    response = api.get(f"/practitioners/{pid}/clients")

    assert response.status_code == 200
    grace, linus = response.json()
    assert grace["email"] == "grace@example.com"
    assert grace["total_bookings"] == 2
    assert grace["completed_bookings"] == 1
    assert grace["total_spent"] == 80.0
    assert grace["last_booking_at"] == "2030-01-01T08:00:00"
    assert grace["risk_level"] == "low"
    assert grace["is_vip"] is False
    assert linus["total_bookings"] == 1
    assert linus["total_spent"] == 0

    assert api.get("/practitioners/9999/clients").status_code == 404
