# Overview: Row locking and the single-transaction wrapper shared by the order, payment and register services.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LockConflict, PersistenceFailure, PosError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Write-time conflicts on SQLite are still caught by the version_id
    columns (StaleDataError on flush).
    """
    return query.with_for_update()


def run_in_transaction(func, *, failure_message: str):
    """
    Run a multi-table business operation and commit it as one unit.

    - PosError: rolled back and re-raised unchanged
    - StaleDataError (optimistic version mismatch): rolled back, LockConflict
    - any other SQLAlchemyError: rolled back, logged, PersistenceFailure

    No retries: the operator re-submits.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except PosError:
        db.session.rollback()
        raise
    except StaleDataError:
        db.session.rollback()
        current_app.logger.warning("Concurrent modification detected: %s", failure_message)
        raise LockConflict("The order was modified by another user; reload it and try again")
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(failure_message)
        raise PersistenceFailure(failure_message)
