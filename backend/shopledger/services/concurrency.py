# Overview: Transaction helpers shared by the stock engines (locking, retry, write serialization).

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import StoreUnavailableError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    Locked rows are re-read even when already in the identity map.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers that case by taking the database write lock up front.
    """
    return query.populate_existing().with_for_update()


def begin_write_transaction() -> None:
    """
    Serialize writers on SQLite.

    Must be the first statement of the unit of work. On other databases this
    is a no-op and row locks plus conditional updates do the job.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def _configured_attempts() -> int:
    try:
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))
    except RuntimeError:
        return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (locks, deadlocks) and StaleDataError
    (optimistic version conflicts). The session is rolled back before every
    retry, so a retried unit never sees half of a previous attempt. When the
    budget is spent the failure surfaces as StoreUnavailableError.
    Domain errors raised by func roll the session back and propagate as-is.
    """
    if attempts is None:
        attempts = _configured_attempts()

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.error("Giving up after %d attempts: %s", attempts, exc)
                raise StoreUnavailableError("Database is temporarily unavailable") from exc
            logger.warning("Retrying unit of work (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
