"""
Add the no-overlap exclusion constraint to an existing bookings table

Fresh databases get the constraint from create_all. Databases created before
it existed need this migration before BOOKING_CONCURRENCY_STRATEGY=store is
enabled. PostgreSQL only.

Run with: python migrations/add_booking_overlap_constraint.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text
from booking_engine.database import engine
from booking_engine.models import BOOKING_OVERLAP_CONSTRAINT


def upgrade():
    """Create btree_gist and the exclusion constraint"""
    if engine.dialect.name != "postgresql":
        print(f"ℹ️  {engine.dialect.name} has no exclusion constraints, nothing to do")
        return

    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        print("✅ btree_gist extension available")

        # Check if constraint already exists to make migration idempotent
        result = conn.execute(
            text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
            {"name": BOOKING_OVERLAP_CONSTRAINT},
        )
        if result.first():
            print(f"ℹ️  {BOOKING_OVERLAP_CONSTRAINT} already exists")
        else:
            # Fails if active bookings already overlap; resolve those first
            conn.execute(text(f"""
                ALTER TABLE bookings
                ADD CONSTRAINT {BOOKING_OVERLAP_CONSTRAINT}
                EXCLUDE USING gist (
                    practitioner_id WITH =,
                    tsrange(start_time, end_time, '[)') WITH &&
                )
                WHERE (status IN ('PENDING', 'CONFIRMED'))
            """))
            print(f"✅ Added {BOOKING_OVERLAP_CONSTRAINT}")

        conn.commit()
        print("\n✅ Migration completed successfully!")


def downgrade():
    """Drop the exclusion constraint (the extension is left installed)"""
    with engine.connect() as conn:
        conn.execute(text(f"ALTER TABLE bookings DROP CONSTRAINT IF EXISTS {BOOKING_OVERLAP_CONSTRAINT}"))
        conn.commit()
        print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description='Manage booking overlap constraint migration')
    parser.add_argument('--down', action='store_true', help='Rollback the migration')
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
