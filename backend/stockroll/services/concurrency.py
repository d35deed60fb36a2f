# Overview: Row locking and retry helpers for ledger and workflow units of work.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .uow import in_unit_of_work

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; line rows also carry a
    version_id column, so a concurrent write there surfaces as StaleDataError.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Inside an enclosing unit of work the
    function runs exactly once: retrying there would replay half of the
    outer transaction.
    """
    if in_unit_of_work(session):
        return func()

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Concurrency conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
