"""Schedule repository - Database operations for weekly availability"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Practitioner, WeeklyAvailability


class AvailabilityRepository:
    """Repository for the Schedule Definition Store"""

    @staticmethod
    def get_schedule(db: Session, practitioner_id: int) -> list[WeeklyAvailability]:
        """Get all recurring rows for a practitioner, Sunday first"""
        return (
            db.query(WeeklyAvailability)
            .filter(
                WeeklyAvailability.practitioner_id == practitioner_id,
                WeeklyAvailability.is_recurring.is_(True),
            )
            .order_by(WeeklyAvailability.day_of_week.asc(), WeeklyAvailability.start_time.asc())
            .all()
        )

    @staticmethod
    def replace_schedule(
        db: Session,
        practitioner: Practitioner,
        working_days: list[dict],
        slot_granularity_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
    ) -> list[WeeklyAvailability]:
        """
        Delete every recurring row and insert the new set in one transaction.
        Schedules are never patched row by row.
        """
        try:
            db.query(WeeklyAvailability).filter(
                WeeklyAvailability.practitioner_id == practitioner.id,
                WeeklyAvailability.is_recurring.is_(True),
            ).delete(synchronize_session=False)

            rows = [
                WeeklyAvailability(practitioner_id=practitioner.id, is_recurring=True, **day)
                for day in working_days
            ]
            db.add_all(rows)

            if slot_granularity_minutes is not None:
                practitioner.slot_granularity_minutes = slot_granularity_minutes
            if buffer_minutes is not None:
                practitioner.buffer_minutes = buffer_minutes

            db.commit()
        except Exception:
            db.rollback()
            raise

        return AvailabilityRepository.get_schedule(db, practitioner.id)
