from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() takes the
    database write lock there instead.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the write transaction before the first read of a stock operation.

    On SQLite, BEGIN IMMEDIATE takes the RESERVED lock up front so two
    writers serialize on it instead of both reading the same stock value.
    Other backends rely on lock_for_update().
    """
    if db.engine.dialect.name != "sqlite":
        return
    # Drop any read-only transaction left open by earlier lookups
    if db.session().in_transaction():
        db.session.commit()
    db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors raised by func are
    not retried.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Concurrent write conflict, retrying (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
