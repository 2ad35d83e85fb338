"""Explicit registry of resource slots keyed by resource identity.

The registry replaces ambient per-process singletons: each logical resource
gets exactly one :class:`ResourceSlot`, created on first registration and
kept for the registry's lifetime.  The registry lock guards only the
key-to-slot map; operations on different resources never contend.

Example
-------
::

    registry = ResourceRegistry(gate)
    records = registry.proxy("Pedro Silva", factory=lambda: PatientRecord("Pedro Silva"))
    records.operation(identity, OperationKind.READ)
    registry.proxy("Pedro Silva") is records   # True
"""
from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterator

from aumos_resource_proxy.proxy.async_proxy import AsyncResourceProxy
from aumos_resource_proxy.proxy.resource_proxy import ResourceProxy
from aumos_resource_proxy.proxy.slot import ResourceSlot

if TYPE_CHECKING:
    from aumos_resource_proxy.audit.logger import AccessAuditLog
    from aumos_resource_proxy.authorization.gate import AuthorizationGate
    from aumos_resource_proxy.config import ProxyConfig

logger = logging.getLogger(__name__)


class ResourceRegistry:
    """Owns the slot and proxy of every registered logical resource.

    Parameters
    ----------
    gate:
        Gate shared by all proxies created through this registry.
    audit:
        Optional access log shared by all proxies.
    init_timeout:
        Default wait limit for in-flight materializations.
    """

    def __init__(
        self,
        gate: "AuthorizationGate",
        audit: "AccessAuditLog | None" = None,
        init_timeout: float | None = None,
    ) -> None:
        self._gate = gate
        self._audit = audit
        self._init_timeout = init_timeout
        self._proxies: dict[str, ResourceProxy | AsyncResourceProxy] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: "ProxyConfig") -> ResourceRegistry:
        """Build a registry whose gate, audit log, and timeout come from *config*."""
        from aumos_resource_proxy.audit.logger import AccessAuditLog
        from aumos_resource_proxy.authorization.gate import AuthorizationGate

        audit = AccessAuditLog(config.audit.log_path) if config.audit.enabled else None
        return cls(
            AuthorizationGate(config.build_policy()),
            audit=audit,
            init_timeout=config.lifecycle.init_timeout_seconds,
        )

    @property
    def gate(self) -> "AuthorizationGate":
        return self._gate

    # ------------------------------------------------------------------
    # Registration and lookup
    # ------------------------------------------------------------------

    def proxy(
        self,
        key: str,
        factory: Callable[[], Any] | None = None,
        copier: Callable[[Any], Any] | None = None,
    ) -> ResourceProxy:
        """Return the thread-based proxy for *key*, registering it if new.

        Raises
        ------
        KeyError
            If *key* is unknown and no factory was given.
        TypeError
            If *key* was registered as an asynchronous resource.
        """
        found = self._get_or_register(key, factory, copier, asynchronous=False)
        if not isinstance(found, ResourceProxy):
            raise TypeError(f"Resource '{key}' is registered as asynchronous.")
        return found

    def async_proxy(
        self,
        key: str,
        factory: Callable[[], Any] | None = None,
        copier: Callable[[Any], Any] | None = None,
    ) -> AsyncResourceProxy:
        """Return the asyncio proxy for *key*, registering it if new."""
        found = self._get_or_register(key, factory, copier, asynchronous=True)
        if not isinstance(found, AsyncResourceProxy):
            raise TypeError(f"Resource '{key}' is registered as synchronous.")
        return found

    def slot(self, key: str) -> ResourceSlot:
        """Return the slot of a registered resource.

        Raises
        ------
        KeyError
            If *key* is not registered.
        """
        with self._lock:
            if key not in self._proxies:
                raise KeyError(f"No resource registered under key: {key}")
            return self._proxies[key].slot

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._proxies

    def __len__(self) -> int:
        with self._lock:
            return len(self._proxies)

    def keys(self) -> Iterator[str]:
        with self._lock:
            return iter(sorted(self._proxies))

    def summary(self) -> dict[str, dict[str, object]]:
        """Return ``{key: {"state": ..., "count": ...}}`` for every resource."""
        with self._lock:
            proxies = list(self._proxies.values())
        return {
            p.key: {"state": p.state.value, "count": p.ledger_count}
            for p in proxies
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _get_or_register(
        self,
        key: str,
        factory: Callable[[], Any] | None,
        copier: Callable[[Any], Any] | None,
        asynchronous: bool,
    ) -> ResourceProxy | AsyncResourceProxy:
        with self._lock:
            existing = self._proxies.get(key)
            if existing is not None:
                return existing
            if factory is None:
                raise KeyError(f"No resource registered under key: {key}")
            slot = ResourceSlot(key, factory, copier, asynchronous=asynchronous)
            proxy_cls = AsyncResourceProxy if asynchronous else ResourceProxy
            created = proxy_cls(slot, self._gate, self._audit, self._init_timeout)
            self._proxies[key] = created
            logger.info("Registered %s resource %s",
                        "async" if asynchronous else "sync", key)
            return created
