"""Per-key mutual exclusion."""

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLocks:
    """One lock per key, created on demand and dropped when unused.

    Work on different keys never contends; work on the same key is
    serialized. Used to make the load-mutate-save sequence for one
    portfolio (or one transaction) mutually exclusive.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refs: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
