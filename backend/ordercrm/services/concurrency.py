# Overview: Retry and atomic-claim helpers shared by services that write contended rows.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, SQLite "database is locked") and
    StaleDataError. The session is rolled back before each retry, so `func`
    must redo all of its work.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def claim_flag(model, row_id: int, column: str, *, expected: bool, new: bool) -> bool:
    """
    Atomically flip a boolean column from `expected` to `new`.

    Issues UPDATE ... WHERE id = :id AND <column> = :expected and reports
    whether this caller won the row. Two concurrent callers can never both
    see True for the same transition.
    """
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id, col.is_(expected))
        .values({column: new})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
