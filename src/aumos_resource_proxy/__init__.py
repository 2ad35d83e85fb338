"""aumos-resource-proxy — Access-controlled, lazy, reference-counted resource proxies.

Public API
----------
The stable public surface is everything exported from this module.
Anything inside submodules not re-exported here is considered private
and may change without notice.

Example
-------
>>> import aumos_resource_proxy as rp
>>> Role = rp.make_role_enum(["MEDICO", "USUARIO"])
>>> gate = rp.AuthorizationGate(
...     rp.PermissionPolicy.from_table(Role, {"MEDICO": {"read": True}})
... )
>>> registry = rp.ResourceRegistry(gate)
>>> notes = registry.proxy("notes", factory=dict)
>>> notes.state
<ProxyState.UNMATERIALIZED: 'unmaterialized'>
"""
from __future__ import annotations

__version__: str = "0.1.0"

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------
from aumos_resource_proxy.errors import (
    AccessDenied,
    InitError,
    LedgerUnderflow,
    OperationError,
    ProxyError,
    WaitCancelled,
)

# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
from aumos_resource_proxy.authorization.gate import (
    AuthorizationGate,
    AuthorizationResult,
    PermissionPolicy,
)
from aumos_resource_proxy.authorization.identity import (
    Identity,
    OperationKind,
    make_role_enum,
)
from aumos_resource_proxy.authorization.policy_loader import (
    PolicyConfigError,
    PolicyLoader,
)

# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
from aumos_resource_proxy.lifecycle.async_cell import AsyncLazyCell
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.lifecycle.lazy_cell import CellState, LazyCell
from aumos_resource_proxy.lifecycle.ledger import ReferenceLedger

# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------
from aumos_resource_proxy.proxy.async_proxy import AsyncResourceProxy
from aumos_resource_proxy.proxy.registry import ResourceRegistry
from aumos_resource_proxy.proxy.resource_proxy import (
    ProxyState,
    Resource,
    ResourceProxy,
)
from aumos_resource_proxy.proxy.slot import ResourceSlot

# ---------------------------------------------------------------------------
# Audit and configuration
# ---------------------------------------------------------------------------
from aumos_resource_proxy.audit.logger import AccessAuditLog
from aumos_resource_proxy.config import ConfigLoader, ProxyConfig

__all__ = [
    "__version__",
    # Errors
    "AccessDenied",
    "InitError",
    "LedgerUnderflow",
    "OperationError",
    "ProxyError",
    "WaitCancelled",
    # Authorization
    "AuthorizationGate",
    "AuthorizationResult",
    "Identity",
    "OperationKind",
    "PermissionPolicy",
    "PolicyConfigError",
    "PolicyLoader",
    "make_role_enum",
    # Lifecycle
    "AsyncLazyCell",
    "CellState",
    "CowBox",
    "LazyCell",
    "ReferenceLedger",
    # Proxy
    "AsyncResourceProxy",
    "ProxyState",
    "Resource",
    "ResourceProxy",
    "ResourceRegistry",
    "ResourceSlot",
    # Audit and configuration
    "AccessAuditLog",
    "ConfigLoader",
    "ProxyConfig",
]
