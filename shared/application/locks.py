"""
Keyed Locks

Process-local mutual exclusion keyed by an identifier (e.g. a room id).
Each key gets its own lock so unrelated keys never serialise each other.
Locks are reference counted and discarded once no thread holds or waits
for them.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List


class KeyedLock:
    """Registry of per-key re-entrant locks"""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1

        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        """Number of keys currently held or awaited"""
        with self._guard:
            return len(self._locks)
