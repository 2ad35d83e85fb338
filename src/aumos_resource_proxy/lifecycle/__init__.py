"""Lifecycle primitives: lazy materialization, reference counting, copy-on-write."""
from __future__ import annotations

from aumos_resource_proxy.lifecycle.async_cell import AsyncLazyCell
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.lifecycle.lazy_cell import CellState, LazyCell
from aumos_resource_proxy.lifecycle.ledger import ReferenceLedger

__all__ = [
    "AsyncLazyCell",
    "CellState",
    "CowBox",
    "LazyCell",
    "ReferenceLedger",
]
