"""
Per-key mutual exclusion for ledger transitions.

Every status-changing operation on an invoice (invest, settle, operator
override) runs inside ``invoice_locks.hold(invoice_id)``.  Calls on the same
invoice are serialised; calls on different invoices never wait on each other.

Locks are created on first use and dropped as soon as nobody holds or waits
for them, so the table only ever contains keys with in-flight work.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Dict

logger = logging.getLogger(__name__)


class KeyedLock:
    """A lazily populated map of ``asyncio.Lock`` objects keyed by id."""

    def __init__(self, name: str = "keyed"):
        self.name = name
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: Any) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the ``async with``."""
        key = str(key)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug("Lock %s:%s busy, waiting", self.name, key)
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, key: Any) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


# ── Global lock table shared by every request in this process ──
invoice_locks = KeyedLock(name="invoice")
