"""
Process-wide mutual exclusion for ledger writes.

Every operation that reads stock and then writes it (borrow, return, item
admin writes, overdue sweep) runs inside ``LEDGER_GATE``. One lock for all
items: no lock ordering between items to get wrong.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

from config import settings
from errors import LockTimeout

logger = logging.getLogger("app.gate")

BATCH_LOCK_TIMEOUT = settings.BATCH_LOCK_TIMEOUT
SINGLE_LOCK_TIMEOUT = settings.SINGLE_LOCK_TIMEOUT


class ConcurrencyGate:
    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, timeout: Optional[float] = None) -> Iterator[None]:
        """Enter the critical section, waiting at most ``timeout`` seconds.

        Raises LockTimeout if the lock is not acquired in time. The lock is
        released on every exit path.
        """
        wait = BATCH_LOCK_TIMEOUT if timeout is None else timeout
        start = time.monotonic()
        if not self._lock.acquire(timeout=wait):
            logger.warning("gate=%s timeout_s=%s acquire=failed", self.name, wait)
            raise LockTimeout(self.name, wait)
        waited_ms = int((time.monotonic() - start) * 1000)
        if waited_ms:
            logger.debug("gate=%s waited_ms=%s", self.name, waited_ms)
        try:
            yield
        finally:
            self._lock.release()


LEDGER_GATE = ConcurrencyGate("ledger")
