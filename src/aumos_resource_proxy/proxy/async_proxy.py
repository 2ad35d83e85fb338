"""AsyncResourceProxy — the resource proxy for asyncio callers.

Same pipeline and error taxonomy as :class:`ResourceProxy`; the only
suspension point is waiting for an in-flight materialization.  The factory
and the resource's ``read``/``write`` may be plain callables or coroutine
functions.
"""
from __future__ import annotations

import inspect
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable

from aumos_resource_proxy.authorization.identity import Identity, OperationKind
from aumos_resource_proxy.errors import InitError, OperationError
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.proxy.resource_proxy import _ProxyBase
from aumos_resource_proxy.proxy.slot import ResourceSlot

if TYPE_CHECKING:
    from aumos_resource_proxy.audit.logger import AccessAuditLog
    from aumos_resource_proxy.authorization.gate import AuthorizationGate

logger = logging.getLogger(__name__)


class AsyncResourceProxy(_ProxyBase):
    """Asyncio proxy over one logical resource.

    The slot must be asynchronous (``ResourceSlot(..., asynchronous=True)``).
    """

    def __init__(
        self,
        slot: ResourceSlot,
        gate: "AuthorizationGate",
        audit: "AccessAuditLog | None" = None,
        init_timeout: float | None = None,
    ) -> None:
        if not slot.asynchronous:
            raise ValueError(f"Slot '{slot.key}' is not asynchronous.")
        super().__init__(slot, gate, audit, init_timeout)

    @classmethod
    def for_factory(
        cls,
        key: str,
        factory: Callable[[], Any],
        gate: "AuthorizationGate",
        copier: Callable[[Any], Any] | None = None,
        audit: "AccessAuditLog | None" = None,
        init_timeout: float | None = None,
    ) -> AsyncResourceProxy:
        """Build a proxy owning a private asynchronous slot."""
        slot = ResourceSlot(key, factory, copier, asynchronous=True)
        return cls(slot, gate, audit, init_timeout)

    async def operation(
        self,
        identity: Identity,
        operation: OperationKind | str,
        payload: Any = None,
    ) -> Any:
        """Run one authorized operation against the resource.

        Raises
        ------
        AccessDenied
            The identity may not perform *operation*.
        InitError
            The resource could not be materialized.
        OperationError
            The resource's own operation failed.
        """
        op = OperationKind.parse(operation)
        async with self.open(identity, op) as resource:
            method = resource.write if op is OperationKind.WRITE else resource.read
            try:
                result = method(payload)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                logger.warning("Operation %s on %s failed: %r", op.value, self.key, exc)
                self._audit_failure("operation_failed", identity, op, exc)
                raise OperationError(self.key, op, exc) from exc

    @asynccontextmanager
    async def open(
        self, identity: Identity, operation: OperationKind | str
    ) -> AsyncIterator[Any]:
        """Yield an authorized view of the resource as a live handle."""
        op = OperationKind.parse(operation)
        self._authorize(identity, op)
        box = await self._acquire(identity, op)
        try:
            yield self._view(box, op)
        finally:
            self._slot.ledger.release()

    def copy(self) -> AsyncResourceProxy:
        """Duplicate this proxy; see :meth:`ResourceProxy.copy`."""
        twin = AsyncResourceProxy(
            self._slot.sibling(), self._gate, self._audit, self._init_timeout
        )
        with self._slot.lock:
            box = self._slot.cell.peek()
            if box is not None:
                twin._slot.cell.prime(box.share())
                twin._slot.ledger.acquire()
                twin._pinned = True
        return twin

    async def __aenter__(self) -> AsyncResourceProxy:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    async def _acquire(self, identity: Identity, operation: OperationKind) -> CowBox[Any]:
        try:
            return await self._slot.cell.get_or_init(  # type: ignore[misc]
                self._build_box,
                self._init_timeout,
                on_ready=self._pin,
                on_abandon=self._unpin,
            )
        except InitError as exc:
            self._audit_failure("init_failed", identity, operation, exc)
            raise

    async def _build_box(self) -> CowBox[Any]:
        logger.info("Materializing resource %s", self.key)
        instance = self._slot.factory()
        if inspect.isawaitable(instance):
            instance = await instance
        return self._slot.new_box(instance)
