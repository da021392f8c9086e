# Overview: Service-layer helpers for transactional retries and storage error translation.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class PersistenceError(Exception):
    """
    Connectivity or transaction failure at the storage layer.

    Always raised after the open transaction has been rolled back; callers
    may retry the whole operation.
    """


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work, rolling back the session on any failure.

    Retries on OperationalError (deadlocks, locks, dropped connections) and
    StaleDataError (optimistic locking conflicts). When retries run out, or
    on any other SQLAlchemy error, raises PersistenceError. Business errors
    (ValidationError, InsufficientStockError, ...) propagate unchanged after
    rollback and are never retried.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError(f"database unavailable: {exc}") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"database error: {exc}") from exc
        except Exception:
            db.session.rollback()
            raise
