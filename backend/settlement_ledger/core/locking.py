"""Critical sections for multi-collection read-modify-write cycles.

Each collection owns one re-entrant lock. A caller that touches several
collections acquires their locks in sorted name order, so two operations over
overlapping collection sets can never deadlock and never interleave their
read-modify-write cycles.
"""

import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager


class CollectionLocks:
    """Registry of per-collection re-entrant locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _lock_for(self, name: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock

    @contextmanager
    def hold(self, *collections: str) -> Iterator[None]:
        """Hold the locks of ``collections`` for the duration of the block."""
        names = sorted({getattr(c, "value", c) for c in collections})
        with ExitStack() as stack:
            for name in names:
                stack.enter_context(self._lock_for(name))
            yield
