# Overview: Advisory order locks; acquire, extend, release and sweep expired holders.

"""
Order Lock Service

WHY: Two cashiers must not edit the same parked order at once. Locks are
cooperative: a row in order_locks keyed by order id, owned by a
(user, session) pair, expiring after ORDER_LOCK_TTL_SECONDS.

RULES:
- Expired locks are swept on every acquire and by `flask locks sweep`.
- Re-acquiring from the same user and session refreshes the expiry.
- A lock held by anyone else is reported, never stolen.
- Cleanup failures (teardown, sweep) are logged and swallowed.

The lock is a UX hint. Write-time conflicts are caught by the version
counter on Sale (see concurrency.run_in_transaction).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import LockConflict, PersistenceFailure
from ..extensions import db
from ..models import OrderLock
from pos_erp.time_utils import utcnow

DEFAULT_LOCK_TTL_SECONDS = 600


@dataclass
class LockStatus:
    acquired: bool
    lock: OrderLock | None = None
    held_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "acquired": self.acquired,
            "held_by": self.held_by,
            "lock": self.lock.to_dict() if self.lock else None,
        }


def _ttl() -> timedelta:
    return timedelta(seconds=current_app.config.get("ORDER_LOCK_TTL_SECONDS", DEFAULT_LOCK_TTL_SECONDS))


def _owned_by(lock: OrderLock, user_id: int, session_key: str) -> bool:
    return lock.user_id == user_id and lock.session_id == str(session_key)


def _live_lock(order_id) -> OrderLock | None:
    return db.session.query(OrderLock).filter(
        OrderLock.order_id == str(order_id),
        OrderLock.expires_at > utcnow(),
    ).first()


def sweep_expired_locks() -> int:
    """Delete every expired lock. Returns the number removed."""
    count = db.session.query(OrderLock).filter(
        OrderLock.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return count


def _sweep_quietly() -> None:
    try:
        sweep_expired_locks()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Expired lock sweep failed", exc_info=True)


def acquire_lock(order_id, user, session_key: str) -> LockStatus:
    """
    Try to take the edit lock on an order.

    Returns LockStatus(acquired=False, held_by=<name>) when another holder
    owns an unexpired lock.
    """
    _sweep_quietly()
    now = utcnow()

    existing = db.session.query(OrderLock).filter_by(order_id=str(order_id)).first()
    if existing is not None and existing.expires_at <= now:
        db.session.delete(existing)
        db.session.flush()
        existing = None

    if existing is not None:
        if _owned_by(existing, user.id, session_key):
            existing.locked_at = now
            existing.expires_at = now + _ttl()
            db.session.commit()
            return LockStatus(acquired=True, lock=existing, held_by=existing.user_name)
        return LockStatus(acquired=False, lock=existing, held_by=existing.user_name)

    lock = OrderLock(
        order_id=str(order_id),
        user_id=user.id,
        user_name=user.name,
        session_id=str(session_key),
        locked_at=now,
        expires_at=now + _ttl(),
    )
    db.session.add(lock)
    try:
        db.session.commit()
    except IntegrityError:
        # Another session inserted between our read and write
        db.session.rollback()
        holder = _live_lock(order_id)
        return LockStatus(acquired=False, lock=holder, held_by=holder.user_name if holder else None)
    return LockStatus(acquired=True, lock=lock, held_by=user.name)


def extend_lock(order_id, user, session_key: str) -> OrderLock:
    """Push the expiry out by one TTL. Only the holder may extend."""
    lock = _live_lock(order_id)
    if lock is None or not _owned_by(lock, user.id, session_key):
        raise LockConflict(
            "You do not hold the lock on this order",
            held_by=lock.user_name if lock else None,
        )
    lock.expires_at = utcnow() + _ttl()
    db.session.commit()
    return lock


def release_lock(order_id, user, session_key: str) -> bool:
    """Release a lock held by this user and session. Returns False if there was nothing to release."""
    lock = db.session.query(OrderLock).filter_by(order_id=str(order_id)).first()
    if lock is None:
        return False
    if not _owned_by(lock, user.id, session_key):
        raise LockConflict(held_by=lock.user_name)
    db.session.delete(lock)
    db.session.commit()
    return True


def release_session_locks(user_id: int, session_key: str) -> int:
    """
    Best-effort release of every lock a session holds (logout / page teardown).

    Never raises; the periodic sweep is the safety net.
    """
    try:
        count = db.session.query(OrderLock).filter_by(
            user_id=user_id,
            session_id=str(session_key),
        ).delete(synchronize_session=False)
        db.session.commit()
        return count
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to release locks for session %s", session_key, exc_info=True)
        return 0


def lock_status(order_id) -> OrderLock | None:
    return _live_lock(order_id)


def list_locks() -> list[OrderLock]:
    return db.session.query(OrderLock).filter(
        OrderLock.expires_at > utcnow()
    ).order_by(OrderLock.locked_at).all()


def ensure_not_locked_by_other(order_id, user, session_key: str | None) -> None:
    """Raise LockConflict if someone else holds an unexpired lock on the order."""
    try:
        lock = _live_lock(order_id)
    except SQLAlchemyError:
        db.session.rollback()
        raise PersistenceFailure("Could not check the order lock")
    if lock is None:
        return
    if session_key is not None and _owned_by(lock, user.id, session_key):
        return
    if session_key is None and lock.user_id == user.id:
        return
    raise LockConflict(held_by=lock.user_name)
