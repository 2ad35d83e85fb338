"""Access audit trail for resource proxies."""
from __future__ import annotations

from aumos_resource_proxy.audit.logger import AccessAuditLog

__all__ = ["AccessAuditLog"]
