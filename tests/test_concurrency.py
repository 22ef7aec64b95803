import threading
from datetime import datetime, time

from booking_engine.domain.bookings.locking import LocalLockManager, LockDiscipline
from booking_engine.domain.bookings.service import BookingTransactionManager
from booking_engine.errors import ConflictError
from booking_engine.models import Booking, BookingStatus

from conftest import MONDAY, fixed_clock

WORKERS = 8


def run_concurrently(target, count):
    barrier = threading.Barrier(count)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker(n):
        barrier.wait()
        try:
            result = target(n)
        except Exception as e:  # collected and asserted on below
            result = e
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


def test_same_slot_has_exactly_one_winner(session_factory, seed, db):
    manager = BookingTransactionManager(
        session_factory,
        LockDiscipline(LocalLockManager(ttl_seconds=30, wait_seconds=30)),
        clock=fixed_clock(),
    )
    start = datetime.combine(MONDAY, time(10))

    outcomes = run_concurrently(
        lambda n: manager.create_booking(
            seed.practitioner_id,
            seed.consultation_id,
            start,
            {"name": f"Client {n}", "email": f"client{n}@example.com"},
        ),
        WORKERS,
    )

    winners = [o for o in outcomes if isinstance(o, Booking)]
    losers = [o for o in outcomes if isinstance(o, ConflictError)]

    assert len(outcomes) == WORKERS
    assert len(winners) == 1
    assert len(losers) == WORKERS - 1
    assert all(e.conflicting_booking_id == winners[0].id for e in losers)

    active = db.query(Booking).filter(Booking.status.in_(BookingStatus.ACTIVE)).all()
    assert [b.id for b in active] == [winners[0].id]


def test_overlapping_but_distinct_slots_have_one_winner(session_factory, seed, db):
    manager = BookingTransactionManager(
        session_factory,
        LockDiscipline(LocalLockManager(ttl_seconds=30, wait_seconds=30)),
        clock=fixed_clock(),
    )
    # Every candidate overlaps every other one
    starts = [datetime.combine(MONDAY, time(10, 5 * n)) for n in range(6)]

    outcomes = run_concurrently(
        lambda n: manager.create_booking(
            seed.practitioner_id,
            seed.consultation_id,
            starts[n],
            {"name": f"Client {n}", "email": f"client{n}@example.com"},
        ),
        len(starts),
    )

    winners = [o for o in outcomes if isinstance(o, Booking)]
    assert len(winners) == 1
    assert all(isinstance(o, ConflictError) for o in outcomes if o is not winners[0])
    assert db.query(Booking).count() == 1


def test_mixed_writers_never_leave_overlapping_bookings(session_factory, seed, db):
    manager = BookingTransactionManager(
        session_factory,
        LockDiscipline(LocalLockManager(ttl_seconds=30, wait_seconds=30)),
        clock=fixed_clock(),
    )

    def at(hour, minute=0):
        return datetime.combine(MONDAY, time(hour, minute))

    def create(n, start):
        return manager.create_booking(
            seed.practitioner_id,
            seed.consultation_id,
            start,
            {"name": f"Client {n}", "email": f"client{n}@example.com"},
        )

    morning = create(100, at(10))
    afternoon = create(101, at(14))
    late = create(102, at(15))

    # Every write below targets the 10:00-11:00 window the morning booking holds
    operations = [
        lambda: manager.cancel(morning.id),
        lambda: manager.reschedule(afternoon.id, at(10, 15)),
        lambda: manager.reschedule(late.id, at(10)),
        lambda: create(1, at(10)),
        lambda: create(2, at(10, 30)),
        lambda: create(3, at(9, 45)),
    ]

    outcomes = run_concurrently(lambda n: operations[n](), len(operations))

    assert len(outcomes) == len(operations)
    assert all(isinstance(o, (Booking, ConflictError)) for o in outcomes), outcomes

    active = (
        db.query(Booking)
        .filter(Booking.status.in_(BookingStatus.ACTIVE))
        .order_by(Booking.start_time)
        .all()
    )
    for earlier, later in zip(active, active[1:]):
        assert earlier.end_time <= later.start_time, (earlier.id, later.id)

    assert db.get(Booking, morning.id).status == BookingStatus.CANCELLED
