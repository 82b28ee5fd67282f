# app/services/locking/lock_service.py
"""
Transaction-scoped locks that serialise conflict-check-then-write.

On PostgreSQL these are pg_advisory_xact_lock calls, released automatically
at commit/rollback. SQLite has no row or advisory locks, so the whole
database write lock is taken before the conflict read instead; a writer
that cannot get it within the busy timeout fails with "database is locked".
Other dialects rely on the database's own write locking.
"""
import hashlib
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

ADVISORY_XACT_LOCK = text("SELECT pg_advisory_xact_lock(:key)")
# matches no rows but opens a write transaction, taking SQLite's RESERVED lock
SQLITE_WRITE_LOCK = text("UPDATE businesses SET id = id WHERE 1 = 0")


def advisory_key(*parts) -> int:
    """Stable signed 64-bit key for a tuple of identifiers"""
    raw = ":".join("" if p is None else str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.sha1(raw).digest()[:8], "big", signed=True)


class LockService:
    """Advisory locks keyed by calendar scope"""

    @staticmethod
    def _acquire(db: Session, key: int, label: str) -> None:
        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            db.execute(ADVISORY_XACT_LOCK, {"key": key})
        elif dialect == "sqlite":
            db.execute(SQLITE_WRITE_LOCK)
        else:
            logger.debug(f"Lock {label} skipped on {dialect}")
            return
        logger.debug(f"Acquired lock {label}")

    @staticmethod
    def lock_calendar(db: Session, business_id: UUID, staff_id: Optional[UUID]) -> None:
        """Serialise bookings for one (business, staff) calendar until commit"""
        LockService._acquire(
            db, advisory_key("calendar", business_id, staff_id), f"calendar:{business_id}:{staff_id}"
        )

    @staticmethod
    def lock_template(db: Session, template_id: UUID) -> None:
        """Serialise expansion of one recurring template until commit"""
        LockService._acquire(db, advisory_key("recurring", template_id), f"recurring:{template_id}")
