"""Unit tests for the pipeline lock."""

from unittest.mock import MagicMock

import pytest

from tracker_core.infra.locks import DatabaseLock, LockError


class TestDatabaseLockLocal:
    """SQLite falls back to a process-local lock."""

    def test_acquire_and_release(self, sync_engine):
        lock = DatabaseLock(sync_engine, "test.acquire_release")

        assert lock.try_acquire() is True
        assert lock.held is True

        lock.release()

        assert lock.held is False
        assert lock.acquire_count == 1
        assert lock.release_count == 1

    def test_second_holder_is_denied(self, sync_engine):
        first = DatabaseLock(sync_engine, "test.contended")
        second = DatabaseLock(sync_engine, "test.contended")

        assert first.try_acquire() is True
        try:
            assert second.try_acquire() is False
            assert second.acquire_count == 0
        finally:
            first.release()

        assert second.try_acquire() is True
        second.release()

    def test_different_names_do_not_conflict(self, sync_engine):
        first = DatabaseLock(sync_engine, "test.name_a")
        second = DatabaseLock(sync_engine, "test.name_b")

        assert first.try_acquire() is True
        assert second.try_acquire() is True
        first.release()
        second.release()

    def test_release_without_acquire(self, sync_engine):
        with pytest.raises(LockError):
            DatabaseLock(sync_engine, "test.not_held").release()

    def test_double_acquire_by_same_instance(self, sync_engine):
        lock = DatabaseLock(sync_engine, "test.double")
        lock.try_acquire()
        try:
            with pytest.raises(LockError):
                lock.try_acquire()
        finally:
            lock.release()


def _mysql_engine(lock_result):
    engine = MagicMock()
    engine.dialect.name = "mysql"
    conn = engine.connect.return_value
    conn.execute.return_value.scalar.return_value = lock_result
    return engine, conn


class TestDatabaseLockMySQL:
    """MySQL uses GET_LOCK on a dedicated connection."""

    def test_get_lock_granted(self):
        engine, conn = _mysql_engine(1)
        lock = DatabaseLock(engine, "social_tracker.fetch_posts")

        assert lock.try_acquire() is True
        statement = str(conn.execute.call_args.args[0])
        assert "GET_LOCK" in statement
        conn.close.assert_not_called()

        lock.release()

        assert "RELEASE_LOCK" in str(conn.execute.call_args.args[0])
        conn.close.assert_called_once()

    def test_get_lock_denied_closes_connection(self):
        engine, conn = _mysql_engine(0)
        lock = DatabaseLock(engine, "social_tracker.fetch_posts")

        assert lock.try_acquire() is False
        conn.close.assert_called_once()
        assert lock.held is False

    def test_connection_closed_when_release_fails(self):
        engine, conn = _mysql_engine(1)
        lock = DatabaseLock(engine, "social_tracker.fetch_posts")
        lock.try_acquire()
        conn.execute.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            lock.release()

        conn.close.assert_called_once()
        assert lock.held is False
        assert lock.release_count == 1
