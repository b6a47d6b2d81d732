"""
Agency Engine v1.0: Session Locks
Per-session read/write locks, allocated on first use and dropped once
nobody uses them and the session is deleted or turns out not to exist.
Locks are only ever taken for one session at a time, so there is no lock
ordering to get wrong.

A thread holding a session's write lock may take its read or write
lock again (the repository reads through the same table while a
mutation is in flight).
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Optional

from config import LOCK_TIMEOUT
from errors import internal

logger = logging.getLogger("agency.locks")


class RWLock:

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer: Optional[int] = None
        self._write_depth = 0

    def acquire_read(self, timeout: Optional[float] = None) -> bool:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
                return True
            if not self._cond.wait_for(lambda: self._writer is None, timeout):
                return False
            self._readers += 1
            return True

    def release_read(self):
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._release_write_locked()
                return
            if self._readers <= 0:
                raise RuntimeError("release_read without a matching acquire")
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, timeout: Optional[float] = None) -> bool:
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                self._write_depth += 1
                return True
            ready = self._cond.wait_for(
                lambda: self._writer is None and self._readers == 0, timeout)
            if not ready:
                return False
            self._writer = me
            self._write_depth = 1
            return True

    def release_write(self):
        with self._cond:
            if self._writer != threading.get_ident():
                raise RuntimeError("release_write by a thread that does not hold the lock")
            self._release_write_locked()

    def _release_write_locked(self):
        self._write_depth -= 1
        if self._write_depth == 0:
            self._writer = None
            self._cond.notify_all()

    @property
    def readers(self) -> int:
        return self._readers

    @property
    def write_held(self) -> bool:
        return self._writer is not None


# ─────────────────────────────────────────────────────
# REQUEST CONTEXT (deadline + cancellation)
# ─────────────────────────────────────────────────────

class RequestContext:
    """Carried through a mutation; checked before anything is persisted."""

    def __init__(self, deadline: Optional[float] = None):
        self.deadline = deadline                 # time.monotonic() value
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "RequestContext":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self):
        if self.cancelled:
            raise internal("request cancelled", reason="cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise internal("request deadline exceeded", reason="deadline")


# ─────────────────────────────────────────────────────
# SESSION LOCK TABLE
# ─────────────────────────────────────────────────────

class SessionLockTable:
    """
    Process-wide map session_id -> RWLock. Shared by every repository view.
    Each entry counts the threads holding or waiting on it, so an entry
    can be dropped only when nobody is using it.
    """

    def __init__(self, timeout: float = LOCK_TIMEOUT):
        self._guard = threading.Lock()
        self._locks: dict = {}
        self._users: dict = {}       # session_id -> threads inside read_locked/write_locked
        self.timeout = timeout

    def _checkout(self, session_id: str) -> RWLock:
        with self._guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = RWLock()
                self._locks[session_id] = lock
            self._users[session_id] = self._users.get(session_id, 0) + 1
            return lock

    def _checkin(self, session_id: str):
        with self._guard:
            left = self._users.get(session_id, 1) - 1
            if left > 0:
                self._users[session_id] = left
            else:
                self._users.pop(session_id, None)

    def discard_if_idle(self, session_id: str) -> bool:
        """Drop the entry unless some thread holds or waits on it."""
        with self._guard:
            if session_id not in self._locks or self._users.get(session_id, 0) > 0:
                return False
            del self._locks[session_id]
            return True

    def __len__(self):
        with self._guard:
            return len(self._locks)

    def __contains__(self, session_id: str):
        with self._guard:
            return session_id in self._locks

    def _timeout_for(self, ctx: Optional[RequestContext]) -> float:
        if ctx is not None and ctx.remaining() is not None:
            return min(self.timeout, ctx.remaining())
        return self.timeout

    @contextmanager
    def read_locked(self, session_id: str, ctx: Optional[RequestContext] = None):
        lock = self._checkout(session_id)
        try:
            if not lock.acquire_read(self._timeout_for(ctx)):
                logger.warning(f"Read lock timeout on session {session_id}")
                raise internal("timed out waiting for session lock", session_id=session_id)
            try:
                yield lock
            finally:
                lock.release_read()
        finally:
            self._checkin(session_id)

    @contextmanager
    def write_locked(self, session_id: str, ctx: Optional[RequestContext] = None):
        lock = self._checkout(session_id)
        try:
            if not lock.acquire_write(self._timeout_for(ctx)):
                logger.warning(f"Write lock timeout on session {session_id}")
                raise internal("timed out waiting for session lock", session_id=session_id)
            try:
                yield lock
            finally:
                lock.release_write()
        finally:
            self._checkin(session_id)


# ─────────────────────────────────────────────────────
# AFTER-COMMIT HOOKS
# ─────────────────────────────────────────────────────

class AfterCommit:
    """
    Side effects that belong to a session mutation but live outside the
    session row (clue metadata, influence logs, narration requests).
    Inside collecting() they are held per thread and run only once the
    mutation has been persisted; a failed mutation drops them. Outside
    a mutation they run immediately.
    """

    def __init__(self):
        self._local = threading.local()

    @contextmanager
    def collecting(self):
        outer = getattr(self._local, "pending", None)
        pending: list = []
        self._local.pending = pending
        try:
            yield pending
        finally:
            self._local.pending = outer

    def run(self, fn):
        pending = getattr(self._local, "pending", None)
        if pending is None:
            fn()
        else:
            pending.append(fn)


after_commit = AfterCommit()
