"""Resource proxies, their per-resource slots, and the registry that owns them."""
from __future__ import annotations

from aumos_resource_proxy.proxy.async_proxy import AsyncResourceProxy
from aumos_resource_proxy.proxy.registry import ResourceRegistry
from aumos_resource_proxy.proxy.resource_proxy import (
    ProxyState,
    Resource,
    ResourceProxy,
)
from aumos_resource_proxy.proxy.slot import ResourceSlot

__all__ = [
    "AsyncResourceProxy",
    "ProxyState",
    "Resource",
    "ResourceProxy",
    "ResourceRegistry",
    "ResourceSlot",
]
