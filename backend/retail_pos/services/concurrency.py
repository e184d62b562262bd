# Overview: Unit-of-work helpers: write locking, bounded retries and rollback on failure.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


logger = logging.getLogger(__name__)


class ConcurrencyError(Exception):
    """Raised when a unit of work keeps conflicting after its bounded retries. Safe to retry."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite has no row locks; BEGIN IMMEDIATE serializes writers so a
    read-then-write inside the unit of work cannot interleave with another.
    Skipped when the connection already holds an open transaction.
    """
    if db.engine.dialect.name != "sqlite":
        return
    connection = db.session.connection()
    if not connection.connection.dbapi_connection.in_transaction:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if attempts is None:
        attempts = current_app.config.get("UNIT_OF_WORK_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("UNIT_OF_WORK_BACKOFF_SECONDS", 0.05)
    return max(1, int(attempts)), float(backoff_base)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, lock timeouts) and StaleDataError
    (optimistic locking conflicts). Once attempts are exhausted the failure is
    surfaced as ConcurrencyError instead of waiting indefinitely.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Unit of work gave up after %d attempts: %s", attempts, exc)
                raise ConcurrencyError("The store is busy, please retry") from exc
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run func as one all-or-nothing unit of work and commit it.

    Any exception raised by func rolls back every write it made, so domain
    errors raised halfway (e.g. insufficient stock on the third item) leave
    nothing behind.
    """
    def _op():
        try:
            begin_write()
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
