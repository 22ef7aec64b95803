from datetime import datetime, time, timedelta

import pytest

from booking_engine.domain.clients.service import ClientService, risk_level
from booking_engine.errors import NotFoundError
from booking_engine.models import Client

from conftest import CLIENT, MONDAY, NOW, fixed_clock


def at(hour, minute=0):
    return datetime.combine(MONDAY, time(hour, minute))


@pytest.mark.parametrize(
    "total_bookings, days, expected",
    [(0, None, "medium"), (3, 10, "low"), (3, 61, "medium"), (3, 121, "high")],
)
def test_risk_level(total_bookings, days, expected):
    assert risk_level(total_bookings, days) == expected


def test_clients_ranked_by_spend(manager, seed, db):
    regular = manager.create_booking(seed.practitioner_id, seed.massage_id, at(9), CLIENT)
    manager.create_booking(
        seed.practitioner_id, seed.consultation_id, at(14), {"name": "New", "email": "new@example.com"}
    )
    manager.confirm(regular.id)
    manager.complete(regular.id)

    clients = ClientService(db, clock=fixed_clock(NOW + timedelta(days=90))).get_clients(seed.practitioner_id)

    assert [c["email"] for c in clients] == ["grace@example.com", "new@example.com"]
    assert clients[0]["total_spent"] == 100.0
    assert clients[0]["completed_bookings"] == 1
    assert clients[0]["days_since_last_booking"] == 90
    assert clients[0]["risk_level"] == "medium"
    assert clients[1]["completed_bookings"] == 0


def test_frequent_client_is_vip(seed, db):
    db.add(
        Client(
            practitioner_id=seed.practitioner_id,
            name="Regular",
            email="regular@example.com",
            total_bookings=10,
            last_booking_at=NOW,
        )
    )
    db.commit()

    (regular,) = ClientService(db, clock=fixed_clock()).get_clients(seed.practitioner_id)

    assert regular["is_vip"] is True
    assert regular["total_spent"] == 0


def test_clients_of_unknown_practitioner(db, seed):
    with pytest.raises(NotFoundError):
        ClientService(db).get_clients(9999)
