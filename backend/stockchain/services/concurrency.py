# Overview: Transaction, locking, and retry helpers shared by every ledger-mutating service.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PartialWriteFailure, StockChainError
from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id
    columns catch concurrent writers instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on version_id).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def _staged_writes() -> int:
    session = db.session
    return len(session.new) + len(session.dirty) + len(session.deleted)


def run_atomic(
    func,
    *,
    operation: str,
    commit: bool = True,
    attempts: int = 3,
    backoff_base: float = 0.1,
):
    """
    Run a multi-step ledger operation as one transaction.

    commit=False runs func inside the caller's transaction (the caller
    commits). Otherwise:
    - domain errors roll back and propagate unchanged
    - concurrency conflicts are retried from scratch
    - any other database failure, or conflicts that outlast the retries,
      roll back and surface as PartialWriteFailure
    """
    if not commit:
        return func()

    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS:
            raise
        except StockChainError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            staged = _staged_writes()
            db.session.rollback()
            raise PartialWriteFailure(operation, staged, exc) from exc

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    except RETRYABLE_ERRORS as exc:
        raise PartialWriteFailure(operation, 0, exc) from exc
