# Overview: Transaction, locking and retry helpers shared by every unit of work.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers at the
    database level instead), but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls the session
    back and propagates, so a failed unit of work leaves nothing behind.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            session.rollback()
            raise


def run_unit_of_work(session, func, *, commit: bool = True, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run `func` as one atomic unit.

    commit=True: retry wrapper + single commit at the end.
    commit=False: the caller owns the transaction; `func` only flushes.
    """
    if not commit:
        return func()

    def _op():
        result = func()
        session.commit()
        return result

    return run_with_retry(session, _op, attempts=attempts, backoff_base=backoff_base)
