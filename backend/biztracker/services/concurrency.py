# Overview: Transaction helpers shared by the ledger services (row locks, retry, rollback).

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for ledger mutations.

    Serializes concurrent repayments against the same debt rows.
    NOTE: SQLite ignores SELECT ... FOR UPDATE; PostgreSQL honors it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one unit of work (which commits on success) as a single transaction.

    Any exception rolls the session back before it propagates, so callers
    never observe a half-applied mutation. OperationalError (deadlocks, lock
    timeouts) is retried with exponential backoff.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
