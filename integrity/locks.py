"""
Per-assignment serialization of the check-then-persist sequence.

Two concurrent submissions with identical content must not both pass
duplicate detection. LocalAssignmentLocks covers a single process;
RedisAssignmentLocks covers several workers sharing one Redis.
"""

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Dict, Optional, Protocol

from redis.exceptions import LockError

from integrity.errors import AssignmentBusy

logger = logging.getLogger(__name__)


class AssignmentLocks(Protocol):
    def hold(self, assignment_id: str) -> ContextManager[None]:
        """Block until the assignment is free, then hold it for the with-block."""
        ...


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        # callers holding or waiting for the lock
        self.users = 0


class LocalAssignmentLocks:
    """
    In-process locks, one per assignment id.

    An entry lives only while some caller holds or waits for it, so the map
    does not grow with every assignment a long-lived process has seen.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[str, _LockEntry] = {}

    def _checkout(self, assignment_id: str) -> _LockEntry:
        with self._guard:
            entry = self._locks.get(assignment_id)
            if entry is None:
                entry = self._locks[assignment_id] = _LockEntry()
            entry.users += 1
            return entry

    def _checkin(self, assignment_id: str, entry: _LockEntry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[assignment_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, assignment_id: str):
        entry = self._checkout(assignment_id)
        try:
            lock = entry.lock
            acquired = lock.acquire(timeout=self.timeout) if self.timeout else lock.acquire()
            if not acquired:
                raise AssignmentBusy(assignment_id)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(assignment_id, entry)


class RedisAssignmentLocks:
    """
    Distributed locks backed by redis-py's Lock.

    timeout bounds how long a crashed holder can keep the lock;
    blocking_timeout bounds how long a caller waits for it.
    """

    KEY_PREFIX = "assignment_lock:"

    def __init__(self, redis_client=None, timeout: float = 60.0, blocking_timeout: Optional[float] = None):
        if redis_client is None:
            from jobs.redis_queue import get_redis_client
            redis_client = get_redis_client()
        self._redis = redis_client
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout if blocking_timeout is not None else timeout

    @contextmanager
    def hold(self, assignment_id: str):
        lock = self._redis.lock(
            f"{self.KEY_PREFIX}{assignment_id}",
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        if not lock.acquire():
            raise AssignmentBusy(assignment_id)
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lock expired while held; the uniqueness constraint still guards the insert
                logger.warning(f"⚠️ Assignment lock for {assignment_id} expired before release: {e}")
