"""Copy-on-write box sharing one instance between several owners.

Every CowBox is a handle onto a shared record ``(instance, share_count)``.
:meth:`CowBox.share` hands out another handle on the same record in O(1).
:meth:`CowBox.for_mutation` gives the caller an exclusive instance: when the
record is shared, the instance is cloned, the old record loses one share, and
this handle is re-pointed at a private record with a share count of one.

Example
-------
>>> box = CowBox(["a"])
>>> twin = box.share()
>>> box.share_count
2
>>> box.for_mutation().append("b")
>>> box.read(), twin.read()
(['a', 'b'], ['a'])
>>> box.share_count, twin.share_count
(1, 1)
"""
from __future__ import annotations

import copy
import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _SharedRecord(Generic[T]):
    __slots__ = ("instance", "share_count", "lock")

    def __init__(self, instance: T, lock: threading.RLock) -> None:
        self.instance = instance
        self.share_count = 1
        self.lock = lock


class CowBox(Generic[T]):
    """Handle onto a copy-on-write shared instance.

    Parameters
    ----------
    instance:
        The instance to wrap.  The new box is its sole owner.
    copier:
        Produces a private clone on a write split.  Defaults to
        ``copy.deepcopy``.
    lock:
        Lock guarding the shared record; a private ``threading.RLock`` is
        created when omitted.
    """

    def __init__(
        self,
        instance: T,
        copier: Callable[[T], T] | None = None,
        lock: threading.RLock | None = None,
    ) -> None:
        self._record: _SharedRecord[T] = _SharedRecord(
            instance, lock if lock is not None else threading.RLock()
        )
        self._copier: Callable[[T], T] = copier or copy.deepcopy
        self._released = False

    @classmethod
    def _from_record(
        cls, record: _SharedRecord[T], copier: Callable[[T], T]
    ) -> CowBox[T]:
        box = cls.__new__(cls)
        box._record = record
        box._copier = copier
        box._released = False
        return box

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read(self) -> T:
        """Return the instance for reading.  Never copies or counts."""
        self._ensure_live()
        return self._record.instance

    def for_mutation(self) -> T:
        """Return an instance this handle may mutate without affecting others."""
        self._ensure_live()
        while True:
            record = self._record
            with record.lock:
                # Another thread may have split this handle meanwhile.
                if record is not self._record:
                    continue
                if record.share_count == 1:
                    return record.instance
                clone = self._copier(record.instance)
                record.share_count -= 1
                self._record = _SharedRecord(clone, threading.RLock())
                logger.debug(
                    "CowBox split: original now shared by %d", record.share_count
                )
                return clone

    def share(self) -> CowBox[T]:
        """Return a new handle on the same instance and bump the share count."""
        self._ensure_live()
        while True:
            record = self._record
            with record.lock:
                if record is not self._record:
                    continue
                record.share_count += 1
            return CowBox._from_record(record, self._copier)

    def release(self) -> None:
        """Drop this handle's share.  The handle is unusable afterwards."""
        if self._released:
            return
        record = self._record
        with record.lock:
            record.share_count -= 1
        self._released = True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def share_count(self) -> int:
        record = self._record
        with record.lock:
            return record.share_count

    @property
    def is_shared(self) -> bool:
        return self.share_count > 1

    @property
    def released(self) -> bool:
        return self._released

    def shares_instance_with(self, other: CowBox[T]) -> bool:
        return self._record is other._record

    def _ensure_live(self) -> None:
        if self._released:
            raise RuntimeError("CowBox handle used after release().")
