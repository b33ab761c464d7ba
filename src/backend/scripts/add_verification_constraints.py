"""
Migration script to add the fraud signature constraints on verification_records.

Duplicate detection relies on two unique constraints:
- (video_id, device_fingerprint): one vote per device per video
- (video_id, ip_address): one vote per network per video

Unresolvable IPs must be stored as NULL (not the string 'unknown') so they do
not collide. The script normalizes them, refuses to continue while duplicates
exist (votes are never deleted automatically), adds the constraints, and
re-syncs talent_videos.verification_count with the stored records.

Run this script against existing PostgreSQL databases.
"""

import asyncio
import os
import sys

# Add the parent directory to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import text

from db.session import engine
from models.verification_record import DEVICE_CONSTRAINT, IP_CONSTRAINT

CONSTRAINTS = {
    DEVICE_CONSTRAINT: "device_fingerprint",
    IP_CONSTRAINT: "ip_address",
}


async def add_verification_constraints() -> bool:
    """Add both unique constraints. Returns False if duplicates block the migration."""
    print("Starting verification constraint migration...")

    async with engine.begin() as conn:
        result = await conn.execute(
            text("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_name = 'verification_records'
            )
        """)
        )
        if not result.scalar():
            print("Table 'verification_records' does not exist. Skipping constraint creation.")
            return True

        result = await conn.execute(
            text("""
            UPDATE verification_records
            SET ip_address = NULL
            WHERE lower(ip_address) = 'unknown' OR ip_address = ''
        """)
        )
        print(f"Normalized {result.rowcount} unresolved IP addresses to NULL.")

        for name, column in CONSTRAINTS.items():
            result = await conn.execute(
                text("SELECT conname FROM pg_constraint WHERE conname = :name"),
                {"name": name},
            )
            if result.fetchone() is not None:
                print(f"Constraint '{name}' already exists.")
                continue

            result = await conn.execute(
                text(f"""
                SELECT video_id, {column}, COUNT(*) AS count
                FROM verification_records
                WHERE {column} IS NOT NULL
                GROUP BY video_id, {column}
                HAVING COUNT(*) > 1
                LIMIT 20
            """)
            )
            duplicates = result.fetchall()
            if duplicates:
                print(f"\nFound {len(duplicates)} duplicate ({column}) combinations:")
                for dup in duplicates:
                    print(f"   - video {dup[0]}: {dup[2]} votes")
                print("Review these votes manually; the constraint was not added.")
                return False

            await conn.execute(
                text(f"ALTER TABLE verification_records ADD CONSTRAINT {name} UNIQUE (video_id, {column})")
            )
            print(f"Constraint '{name}' created.")

        result = await conn.execute(
            text("""
            UPDATE talent_videos tv
            SET verification_count = sub.count
            FROM (
                SELECT video_id, COUNT(*) AS count
                FROM verification_records
                GROUP BY video_id
            ) sub
            WHERE tv.id = sub.video_id AND tv.verification_count <> sub.count
        """)
        )
        print(f"Re-synced verification_count on {result.rowcount} videos.")

    print("\nMigration complete!")
    return True


def main():
    """Run the migration."""
    ok = asyncio.run(add_verification_constraints())
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
