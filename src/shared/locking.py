"""Per-key mutual exclusion for status transitions.

Workflow commands on the same order (or payouts for the same brand) must not
interleave. ``KeyedLocks`` hands out one lock per key; a caller that cannot
acquire it within the timeout fails with ``Conflict`` instead of waiting
forever. A key's lock exists only while someone holds or waits for it.
"""

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from shared.errors import Conflict

logger = structlog.get_logger(__name__)

DEFAULT_LOCK_TIMEOUT = float(os.environ.get("ORDER_LOCK_TIMEOUT_SECONDS", "5"))


class KeyedLocks:
    def __init__(self, name: str, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.name = name
        self.timeout = timeout
        # key -> [lock, number of holders and waiters]; dropped when nobody uses it
        self._locks: dict[str, list] = {}
        self._guard = threading.Lock()

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, key, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        key = str(key)
        lock = self._checkout(key)
        wait = self.timeout if timeout is None else timeout
        try:
            if not lock.acquire(timeout=wait):
                logger.warning("Lock acquisition timed out", lock=self.name, key=key, timeout=wait)
                raise Conflict({self.name: [f"{self.name} {key} is being modified concurrently, retry"]})
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(key)

    def is_held(self, key) -> bool:
        with self._guard:
            entry = self._locks.get(str(key))
            return entry is not None and entry[0].locked()

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
