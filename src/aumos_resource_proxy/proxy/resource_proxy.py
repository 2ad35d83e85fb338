"""ResourceProxy — the access-controlled, lazy, reference-counted façade.

Every operation runs the same pipeline, in this order:

1. Authorization gate.  A denial raises :class:`AccessDenied` before any
   materialization or ledger work happens.
2. ``LazyCell.get_or_init`` — the first caller builds the resource, concurrent
   callers wait for it.  Factory failures raise :class:`InitError`.
3. Ledger acquire, taken by the cell under the slot lock in the same step
   that hands out the instance, and released on every exit path.
4. ``CowBox.for_mutation()`` for WRITE, ``CowBox.read()`` for READ.
5. The resource's own ``read(payload)`` / ``write(payload)``.  Its failures
   raise :class:`OperationError` with the original kept as ``cause``.
6. Ledger release.  At zero the slot drops the instance; the next access
   re-materializes it.

Example
-------
::

    Role = make_role_enum(["MEDICO", "USUARIO"])
    gate = AuthorizationGate(PermissionPolicy.from_table(Role, {"MEDICO": {"read": True}}))
    proxy = ResourceProxy.for_factory("Pedro Silva", lambda: PatientRecord("Pedro Silva"), gate)
    proxy.operation(Identity("dr-ana", frozenset({Role.MEDICO})), OperationKind.READ)
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterator, Protocol, runtime_checkable

from aumos_resource_proxy.authorization.identity import Identity, OperationKind
from aumos_resource_proxy.errors import AccessDenied, InitError, OperationError
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.lifecycle.lazy_cell import CellState
from aumos_resource_proxy.proxy.slot import ResourceSlot

if TYPE_CHECKING:
    from aumos_resource_proxy.audit.logger import AccessAuditLog
    from aumos_resource_proxy.authorization.gate import AuthorizationGate

logger = logging.getLogger(__name__)


@runtime_checkable
class Resource(Protocol):
    """Operations a proxied resource exposes."""

    def read(self, payload: Any) -> Any: ...

    def write(self, payload: Any) -> Any: ...


class ProxyState(str, Enum):
    """Externally visible lifecycle of a proxied resource."""

    UNMATERIALIZED = "unmaterialized"
    MATERIALIZING = "materializing"
    MATERIALIZED = "materialized"


_STATE_MAP: dict[CellState, ProxyState] = {
    CellState.EMPTY: ProxyState.UNMATERIALIZED,
    CellState.FAILED: ProxyState.UNMATERIALIZED,
    CellState.INITIALIZING: ProxyState.MATERIALIZING,
    CellState.READY: ProxyState.MATERIALIZED,
}


class _ProxyBase:
    """Behaviour shared by the thread-based and asyncio proxies."""

    def __init__(
        self,
        slot: ResourceSlot,
        gate: "AuthorizationGate",
        audit: "AccessAuditLog | None" = None,
        init_timeout: float | None = None,
    ) -> None:
        self._slot = slot
        self._gate = gate
        self._audit = audit
        self._init_timeout = init_timeout
        self._pinned = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def key(self) -> str:
        return self._slot.key

    @property
    def slot(self) -> ResourceSlot:
        return self._slot

    @property
    def state(self) -> ProxyState:
        return _STATE_MAP[self._slot.cell.state]

    @property
    def ledger_count(self) -> int:
        return self._slot.ledger.count

    @property
    def share_count(self) -> int:
        """Owners of the current instance, or 0 when unmaterialized."""
        box = self._slot.cell.peek()
        return box.share_count if box is not None else 0

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _authorize(self, identity: Identity, operation: OperationKind) -> None:
        result = self._gate.evaluate(identity, operation)
        if self._audit is not None:
            self._audit.record_decision(
                self.key, identity.subject, operation.value, result.allowed, result.reason
            )
        if not result.allowed:
            logger.warning(
                "Access DENIED: subject=%s op=%s resource=%s",
                identity.subject,
                operation.value,
                self.key,
            )
            raise AccessDenied(identity, operation, self.key)

    def _pin(self, box: CowBox[Any]) -> None:
        self._slot.ledger.acquire()

    def _unpin(self, box: CowBox[Any]) -> None:
        self._slot.ledger.release()

    @staticmethod
    def _view(box: CowBox[Any], operation: OperationKind) -> Any:
        if operation is OperationKind.WRITE:
            return box.for_mutation()
        return box.read()

    def _audit_failure(
        self, event: str, identity: Identity, operation: OperationKind, exc: BaseException
    ) -> None:
        if self._audit is not None:
            self._audit.record_failure(
                event, self.key, identity.subject, operation.value, exc
            )

    def close(self) -> None:
        """Drop the share a :meth:`ResourceProxy.copy` holds.  Idempotent."""
        if self._pinned:
            self._pinned = False
            self._slot.ledger.release()

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} key={self.key!r} state={self.state.value} "
            f"count={self.ledger_count}>"
        )


class ResourceProxy(_ProxyBase):
    """Thread-based proxy over one logical resource.

    Parameters
    ----------
    slot:
        The resource's lifecycle slot.  Shared by every proxy addressing the
        same resource.
    gate:
        Authorization gate consulted before any other work.
    audit:
        Optional access log receiving every decision and failure.
    init_timeout:
        Seconds a caller waits for another caller's in-flight
        materialization before giving up with :class:`WaitCancelled`.
    """

    @classmethod
    def for_factory(
        cls,
        key: str,
        factory: Callable[[], Any],
        gate: "AuthorizationGate",
        copier: Callable[[Any], Any] | None = None,
        audit: "AccessAuditLog | None" = None,
        init_timeout: float | None = None,
    ) -> ResourceProxy:
        """Build a proxy owning a private slot."""
        return cls(ResourceSlot(key, factory, copier), gate, audit, init_timeout)

    def operation(
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
        with self.open(identity, op) as resource:
            method = resource.write if op is OperationKind.WRITE else resource.read
            try:
                return method(payload)
            except Exception as exc:
                logger.warning("Operation %s on %s failed: %r", op.value, self.key, exc)
                self._audit_failure("operation_failed", identity, op, exc)
                raise OperationError(self.key, op, exc) from exc

    @contextmanager
    def open(
        self, identity: Identity, operation: OperationKind | str
    ) -> Iterator[Any]:
        """Yield an authorized view of the resource as a live handle.

        The ledger count stays raised for the whole ``with`` block, so the
        instance cannot be released underneath the caller.  WRITE yields an
        exclusive (possibly freshly split) instance; READ yields the shared
        one.
        """
        op = OperationKind.parse(operation)
        self._authorize(identity, op)
        box = self._acquire(identity, op)
        try:
            yield self._view(box, op)
        finally:
            self._slot.ledger.release()

    def copy(self) -> ResourceProxy:
        """Duplicate this proxy.

        When the resource is materialized the copy shares the instance
        through :meth:`CowBox.share` and keeps its own slot pinned until
        :meth:`close`.  Otherwise the copy is an independent, unmaterialized
        proxy with the same factory.
        """
        twin = ResourceProxy(self._slot.sibling(), self._gate, self._audit, self._init_timeout)
        with self._slot.lock:
            box = self._slot.cell.peek()
            if box is not None:
                twin._slot.cell.prime(box.share())
                twin._slot.ledger.acquire()
                twin._pinned = True
        return twin

    def __enter__(self) -> ResourceProxy:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _acquire(self, identity: Identity, operation: OperationKind) -> CowBox[Any]:
        try:
            return self._slot.cell.get_or_init(  # type: ignore[return-value]
                self._build_box,
                self._init_timeout,
                on_ready=self._pin,
                on_abandon=self._unpin,
            )
        except InitError as exc:
            self._audit_failure("init_failed", identity, operation, exc)
            raise

    def _build_box(self) -> CowBox[Any]:
        logger.info("Materializing resource %s", self.key)
        return self._slot.new_box(self._slot.factory())
