"""
Serialization of competing writes.

Every mutating operation runs inside ``unit_of_work``: one database
transaction that commits on success and rolls back on any exception.
Rows that several actors can touch at once (tables, sessions, orders) are
read with ``SELECT ... FOR UPDATE`` through the repositories, and orders and
sessions carry a version column so a write based on a stale read fails
instead of silently overwriting.

Lock waits are bounded by ``settings.lock_timeout_ms``. Lock timeouts,
deadlocks, serialization failures and stale version checks all surface as
ConcurrentModificationError; the caller may retry the whole operation.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tabledesk_shared.config.logging import get_logger
from tabledesk_shared.config.settings import settings
from tabledesk_shared.utils.exceptions import ConcurrentModificationError

logger = get_logger(__name__)

# lock_not_available, serialization_failure, deadlock_detected
LOCK_CONFLICT_SQLSTATES = frozenset({"55P03", "40001", "40P01"})


def is_lock_conflict(error: OperationalError) -> bool:
    """True when the driver error means "another transaction holds this row"."""
    orig = error.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in LOCK_CONFLICT_SQLSTATES:
        return True
    # SQLite reports writer contention as a plain OperationalError
    return "database is locked" in str(orig).lower()


def _apply_lock_timeout(db: Session) -> None:
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text(f"SET LOCAL lock_timeout = {int(settings.lock_timeout_ms)}"))


@contextmanager
def unit_of_work(db: Session, operation: str) -> Iterator[Session]:
    """
    Run a block as a single all-or-nothing transaction.

    Usage:
        with unit_of_work(self._db, "settle"):
            ...  # reads with FOR UPDATE, writes

    Domain errors raised inside the block roll everything back and
    propagate unchanged.
    """
    try:
        _apply_lock_timeout(db)
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning("Stale write rejected", operation=operation, error=str(e))
        raise ConcurrentModificationError(operation) from e
    except OperationalError as e:
        db.rollback()
        if is_lock_conflict(e):
            logger.warning("Lock wait aborted", operation=operation, error=str(e.orig))
            raise ConcurrentModificationError(operation) from e
        raise
    except Exception:
        db.rollback()
        raise
