# Overview: Transaction boundaries, row locking and retry on store contention.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StoreContention
from ..extensions import db

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = (
    "locked",
    "deadlock",
    "lock wait timeout",
    "could not serialize",
    "busy",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id_col on contended models still catches lost updates there.
    """
    return query.with_for_update()


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def run_with_retry(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    retry_on: tuple = (),
):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on transient OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and any extra exception types in retry_on.
    Raises StoreContention once attempts are exhausted.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, *retry_on) as exc:
            db.session.rollback()
            if isinstance(exc, OperationalError) and not _is_transient(exc):
                raise
            if attempt >= attempts - 1:
                logger.warning("Giving up after %s attempts: %s", attempts, exc)
                raise StoreContention("The store is busy; retry the operation later") from exc
            time.sleep(backoff_base * (2 ** attempt))


def run_in_transaction(func, **retry_kwargs):
    """
    Run func as one atomic unit against the store.

    Commits when func returns; rolls back on any exception so no partial
    write is ever observable. Contention failures are retried from the top.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, **retry_kwargs)
