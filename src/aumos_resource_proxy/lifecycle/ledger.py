"""Reference ledger counting live handles to a materialized instance.

When the count returns to zero the ledger invokes its ``on_zero`` callback
(normally the slot's release hook, which resets the lazy cell).  Callers
should prefer :meth:`ReferenceLedger.hold`, which pairs acquire and release
on every exit path.

Example
-------
>>> ledger = ReferenceLedger()
>>> with ledger.hold() as count:
...     count
1
>>> ledger.count
0
"""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from aumos_resource_proxy.errors import LedgerUnderflow

logger = logging.getLogger(__name__)


class ReferenceLedger:
    """Non-negative reference count with a zero-crossing callback.

    Parameters
    ----------
    on_zero:
        Called, under the ledger lock, each time the count drops to zero.
    lock:
        Lock shared with the rest of the resource slot.  Must be re-entrant
        if ``on_zero`` takes the same lock.
    name:
        Resource key used in log lines and error messages.
    """

    def __init__(
        self,
        on_zero: Callable[[], object] | None = None,
        lock: threading.RLock | None = None,
        name: str | None = None,
    ) -> None:
        self._on_zero = on_zero
        self._lock = lock if lock is not None else threading.RLock()
        self._name = name
        self._count = 0

    def acquire(self) -> int:
        """Increment the count and return the new value."""
        with self._lock:
            self._count += 1
            return self._count

    def release(self) -> int:
        """Decrement the count and return the new value.

        Raises
        ------
        LedgerUnderflow
            If the count is already zero.
        """
        with self._lock:
            if self._count == 0:
                logger.error("Ledger %s released with count 0", self._name)
                raise LedgerUnderflow(
                    f"Ledger '{self._name}' released without a matching acquire."
                )
            self._count -= 1
            if self._count == 0 and self._on_zero is not None:
                logger.debug("Ledger %s reached zero", self._name)
                self._on_zero()
            return self._count

    @contextmanager
    def hold(self) -> Iterator[int]:
        """Acquire for the duration of a ``with`` block."""
        count = self.acquire()
        try:
            yield count
        finally:
            self.release()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count
