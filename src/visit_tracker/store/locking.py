"""Per-visit serialization of mutating operations.

Every mutation of a tracking session runs while holding the lock for its
visit id. Locks are created on demand and dropped once nobody holds or waits
for them, so the registry only ever holds keys that are in use.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class VisitLockRegistry:
    """Reference-counted map of visit id to re-entrant lock."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, visit_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(visit_id)
            if lock is None:
                lock = self._locks[visit_id] = threading.RLock()
            self._holders[visit_id] = self._holders.get(visit_id, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[visit_id] -= 1
                if self._holders[visit_id] == 0:
                    del self._holders[visit_id]
                    del self._locks[visit_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Global registry shared by every service instance in the process
visit_locks = VisitLockRegistry()
