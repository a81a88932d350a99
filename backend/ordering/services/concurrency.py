# Overview: Service-layer helpers for concurrency; optimistic locking and lock retries.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version checks still catch the race on SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock contention.

    Only for internal bookkeeping (document sequences). Business mutations
    surface conflicts to the caller instead of retrying.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_or_conflict(entity_label: str) -> None:
    """
    Commit the current unit of work.

    A version mismatch (another writer got there first) rolls everything back
    and raises ConcurrencyConflictError, leaving entities in their pre-call state.
    """
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            f"{entity_label} was modified concurrently; reload and retry"
        ) from exc
