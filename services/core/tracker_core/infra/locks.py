"""Named advisory locks for serializing pipeline runs.

The fetch pipeline may be triggered from the HTTP cron route and from the
Celery beat schedule at the same time. Both paths share one database, so the
lock lives there:

- MySQL: ``GET_LOCK(name, 0)`` / ``RELEASE_LOCK(name)``
- PostgreSQL: ``pg_try_advisory_lock(hashtext(name))``
- SQLite (dev/test): a process-local lock registry

Server-side locks are bound to the connection that took them, so the lock
holds its own connection for the whole critical section instead of sharing
the request session (whose connection returns to the pool on commit).

Usage:
    lock = DatabaseLock(engine, "social_tracker.fetch_posts")
    if lock.try_acquire():
        try:
            ...
        finally:
            lock.release()
"""

import logging
import threading
from typing import Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


# Process-local locks for dialects without named locks
_local_locks: dict[str, threading.Lock] = {}
_local_locks_guard = threading.Lock()


def _get_local_lock(name: str) -> threading.Lock:
    with _local_locks_guard:
        if name not in _local_locks:
            _local_locks[name] = threading.Lock()
        return _local_locks[name]


class LockError(Exception):
    """Raised when a lock is used out of order."""

    pass


class PipelineLock(Protocol):
    """Protocol for the non-blocking lock used by the fetch pipeline."""

    def try_acquire(self) -> bool: ...
    def release(self) -> None: ...


class DatabaseLock:
    """Non-blocking, named, cross-process lock backed by the database.

    Attributes:
        name: Lock name shared by every process that competes for it.
        acquire_count: Number of successful acquisitions.
        release_count: Number of releases.
    """

    def __init__(self, engine: Engine, name: str):
        """Initialize the lock.

        Args:
            engine: Engine the lock connection is taken from.
            name: Lock name.
        """
        self.engine = engine
        self.name = name
        self.acquire_count = 0
        self.release_count = 0
        self._conn: Optional[Connection] = None
        self._held = False

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @property
    def held(self) -> bool:
        return self._held

    def try_acquire(self) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True if the lock is now held by this instance.
        """
        if self._held:
            raise LockError(f"Lock {self.name} is already held")

        if self.dialect in ("mysql", "postgresql"):
            conn = self.engine.connect()
            try:
                if self.dialect == "mysql":
                    acquired = conn.execute(
                        text("SELECT GET_LOCK(:name, 0)"), {"name": self.name}
                    ).scalar()
                else:
                    acquired = conn.execute(
                        text("SELECT pg_try_advisory_lock(hashtext(:name))"),
                        {"name": self.name},
                    ).scalar()
            except Exception:
                conn.close()
                raise

            if not acquired:
                conn.close()
                logger.info(f"Lock {self.name} is held elsewhere")
                return False
            self._conn = conn
        else:
            if not _get_local_lock(self.name).acquire(blocking=False):
                logger.info(f"Lock {self.name} is held elsewhere")
                return False

        self._held = True
        self.acquire_count += 1
        return True

    def release(self) -> None:
        """Release the lock. Must only be called after a successful acquire."""
        if not self._held:
            raise LockError(f"Lock {self.name} is not held")

        try:
            if self._conn is not None:
                if self.dialect == "mysql":
                    self._conn.execute(
                        text("SELECT RELEASE_LOCK(:name)"), {"name": self.name}
                    )
                else:
                    self._conn.execute(
                        text("SELECT pg_advisory_unlock(hashtext(:name))"),
                        {"name": self.name},
                    )
            else:
                _get_local_lock(self.name).release()
        finally:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
            self._held = False
            self.release_count += 1


__all__ = [
    "DatabaseLock",
    "LockError",
    "PipelineLock",
]
