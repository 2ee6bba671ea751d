"""
Advisory order lock tests.

Verifies:
- A lock held by one session blocks every other holder
- The same user and session refreshes instead of conflicting
- Expired locks are swept and can be taken over
- Session teardown releases everything the session holds
"""

from datetime import timedelta

import pytest

from pos_erp.errors import LockConflict
from pos_erp.models import OrderLock
from pos_erp.services import lock_service
from pos_erp.time_utils import utcnow


def _expire(db_session, order_id):
    lock = db_session.query(OrderLock).filter_by(order_id=str(order_id)).one()
    lock.expires_at = utcnow() - timedelta(seconds=1)
    db_session.commit()


class TestAcquire:

    def test_first_holder_wins(self, db_session, cashier, other_cashier):
        first = lock_service.acquire_lock("17", cashier, "1")
        second = lock_service.acquire_lock("17", other_cashier, "2")

        assert first.acquired is True
        assert second.acquired is False
        assert second.held_by == "Cajero Uno"
        assert db_session.query(OrderLock).count() == 1

    def test_same_session_refreshes(self, db_session, cashier):
        first = lock_service.acquire_lock("17", cashier, "1")
        expires = first.lock.expires_at

        again = lock_service.acquire_lock("17", cashier, "1")

        assert again.acquired is True
        assert again.lock.expires_at >= expires
        assert db_session.query(OrderLock).count() == 1

    def test_same_user_other_session_blocked(self, db_session, cashier):
        lock_service.acquire_lock("17", cashier, "1")
        assert lock_service.acquire_lock("17", cashier, "9").acquired is False

    def test_expired_lock_taken_over(self, db_session, cashier, other_cashier):
        lock_service.acquire_lock("17", cashier, "1")
        _expire(db_session, "17")

        status = lock_service.acquire_lock("17", other_cashier, "2")

        assert status.acquired is True
        assert status.lock.user_name == "Cajero Dos"
        assert lock_service.lock_status("17").user_id == other_cashier.id

    def test_ttl_from_config(self, app, db_session, cashier):
        status = lock_service.acquire_lock("17", cashier, "1")
        ttl = status.lock.expires_at - status.lock.locked_at
        assert ttl == timedelta(seconds=app.config["ORDER_LOCK_TTL_SECONDS"])


class TestRelease:

    def test_release_frees_order(self, db_session, cashier, other_cashier):
        lock_service.acquire_lock("17", cashier, "1")

        assert lock_service.release_lock("17", cashier, "1") is True
        assert lock_service.lock_status("17") is None
        assert lock_service.acquire_lock("17", other_cashier, "2").acquired is True

    def test_release_nothing(self, db_session, cashier):
        assert lock_service.release_lock("17", cashier, "1") is False

    def test_cannot_release_someone_elses_lock(self, db_session, cashier, other_cashier):
        lock_service.acquire_lock("17", cashier, "1")
        with pytest.raises(LockConflict):
            lock_service.release_lock("17", other_cashier, "2")
        assert lock_service.lock_status("17") is not None

    def test_release_session_locks(self, db_session, cashier):
        lock_service.acquire_lock("17", cashier, "1")
        lock_service.acquire_lock("18", cashier, "1")
        lock_service.acquire_lock("19", cashier, "2")

        assert lock_service.release_session_locks(cashier.id, "1") == 2
        assert [lock.order_id for lock in lock_service.list_locks()] == ["19"]

    def test_extend_requires_holder(self, db_session, cashier, other_cashier):
        lock_service.acquire_lock("17", cashier, "1")
        assert lock_service.extend_lock("17", cashier, "1").order_id == "17"
        with pytest.raises(LockConflict):
            lock_service.extend_lock("17", other_cashier, "2")


class TestSweep:

    def test_sweep_removes_only_expired(self, db_session, cashier):
        lock_service.acquire_lock("17", cashier, "1")
        lock_service.acquire_lock("18", cashier, "1")
        _expire(db_session, "17")

        assert lock_service.sweep_expired_locks() == 1
        assert [lock.order_id for lock in db_session.query(OrderLock).all()] == ["18"]

    def test_expired_lock_not_reported(self, db_session, cashier):
        lock_service.acquire_lock("17", cashier, "1")
        _expire(db_session, "17")
        assert lock_service.lock_status("17") is None
        assert lock_service.list_locks() == []
