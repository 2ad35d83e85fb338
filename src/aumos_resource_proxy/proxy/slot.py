"""Per-resource slot: one lock, one lazy cell, one reference ledger.

Every logical resource owns exactly one slot.  The cell, the ledger, and the
copy-on-write box materialized into the cell all share the slot's re-entrant
lock, so state changes for one resource never contend with another.

When the ledger returns to zero the slot drops its box share and resets the
cell, leaving the resource eligible for re-materialization.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from aumos_resource_proxy.lifecycle.async_cell import AsyncLazyCell
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.lifecycle.lazy_cell import LazyCell
from aumos_resource_proxy.lifecycle.ledger import ReferenceLedger

logger = logging.getLogger(__name__)


class ResourceSlot:
    """Owned unit of lifecycle state for one logical resource.

    Parameters
    ----------
    key:
        Identity of the logical resource (file name, account id, ...).
    factory:
        Zero-argument factory producing the underlying resource.  For an
        asynchronous slot it may be a coroutine function.
    copier:
        Clone function used on a copy-on-write split.
    asynchronous:
        Use an :class:`AsyncLazyCell` instead of a thread-blocking cell.
    """

    def __init__(
        self,
        key: str,
        factory: Callable[[], Any],
        copier: Callable[[Any], Any] | None = None,
        asynchronous: bool = False,
    ) -> None:
        self.key = key
        self.factory = factory
        self.copier = copier
        self.asynchronous = asynchronous
        self.lock = threading.RLock()
        self.cell: LazyCell[CowBox[Any]] | AsyncLazyCell[CowBox[Any]]
        if asynchronous:
            self.cell = AsyncLazyCell(lock=self.lock, name=key)
        else:
            self.cell = LazyCell(lock=self.lock, name=key)
        self.ledger = ReferenceLedger(on_zero=self._on_zero, lock=self.lock, name=key)

    def new_box(self, instance: Any) -> CowBox[Any]:
        """Wrap a freshly built instance in a box guarded by this slot's lock."""
        return CowBox(instance, copier=self.copier, lock=self.lock)

    def sibling(self) -> ResourceSlot:
        """Return an empty slot with the same key, factory, and copier."""
        return ResourceSlot(self.key, self.factory, self.copier, self.asynchronous)

    def _on_zero(self) -> None:
        box = self.cell.peek()
        if self.cell.reset() and box is not None:
            box.release()
            logger.debug("Slot %s released its instance", self.key)

    def __repr__(self) -> str:
        return (
            f"<ResourceSlot key={self.key!r} state={self.cell.state.value} "
            f"count={self.ledger.count}>"
        )
