"""
Per-aggregate locks

Commands on the same requirement run one at a time inside a process;
commands on different requirements never wait for each other.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class AggregateLocks:
    """Lazily created lock per stream id"""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, stream_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(stream_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[stream_id] = lock
            return lock

    @contextmanager
    def hold(self, stream_id: str) -> Iterator[None]:
        lock = self._lock_for(stream_id)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
