"""
Jewelry Back-Office - Transaction Helpers
==========================================
Unit of work with a deadline, row locking, and retry on lock conflicts.
"""

import logging
import time
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from common.exceptions import TransactionTimeoutError
from config.database import is_postgres

logger = logging.getLogger("jewelry.transaction")


class UnitOfWork:
    """Handle yielded by unit_of_work(); call checkpoint() between steps."""

    def __init__(self, db: Session, label: str, timeout_seconds: Optional[float]):
        self.db = db
        self.label = label
        self.timeout_seconds = timeout_seconds
        self.started = time.monotonic()
        self.deadline = None if timeout_seconds is None else self.started + timeout_seconds

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def checkpoint(self, step: str = "") -> None:
        if self.expired:
            where = f" at {step}" if step else ""
            raise TransactionTimeoutError(
                f"{self.label} exceeded {self.timeout_seconds}s{where}; rolled back"
            )


@contextmanager
def unit_of_work(db: Session, timeout_seconds: Optional[float] = None, label: str = "transaction"):
    """
    Run a block as one transaction: commit on success, roll back on any error.

    With timeout_seconds set, the block must finish before the deadline or
    the whole transaction is rolled back with TransactionTimeoutError.
    On PostgreSQL the deadline is also pushed down as statement_timeout.
    """
    uow = UnitOfWork(db, label, timeout_seconds)
    try:
        if timeout_seconds is not None and is_postgres(db):
            db.execute(text(f"SET LOCAL statement_timeout = {max(int(timeout_seconds * 1000), 1)}"))
        yield uow
        uow.checkpoint("commit")
        db.commit()
    except OperationalError as exc:
        db.rollback()
        if uow.expired:
            raise TransactionTimeoutError(f"{label} exceeded {timeout_seconds}s; rolled back") from exc
        raise
    except Exception:
        db.rollback()
        raise
    elapsed = time.monotonic() - uow.started
    logger.debug(f"{label} committed in {elapsed:.3f}s")


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; writers are serialized
    there by BEGIN IMMEDIATE (see config.database).
    """
    return query.with_for_update()


def run_with_retry(db: Session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). func must be safe to run again.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning(f"Retrying after {type(exc).__name__} (attempt {attempt + 1}/{attempts}, sleep {delay:.2f}s)")
            time.sleep(delay)
