# Overview: Row locking, optimistic-conflict mapping and retry helpers for device state.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import AssignmentConflict
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for device mutations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The Device.version_id optimistic check covers SQLite.
    """
    return query.with_for_update()


@contextmanager
def device_transaction():
    """
    Commit a device mutation as one unit.

    Any exception rolls the session back. A lost optimistic version race
    (another admin changed the same device first) surfaces as AssignmentConflict.
    """
    try:
        yield
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise AssignmentConflict() from exc
    except Exception:
        db.session.rollback()
        raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute an idempotent DB read with retry on transient failures.

    Retries on OperationalError (locks, dropped connections). Never wrap
    registration code consumption in this: a failed commit may still have
    consumed a use.
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
