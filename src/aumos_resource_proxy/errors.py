"""Error taxonomy for the resource proxy.

Every failure a caller can observe derives from :class:`ProxyError`, so the
three user-visible outcomes stay distinguishable end to end:

- ``AccessDenied``   — "you may not do this"
- ``InitError``      — "the resource could not be prepared"
- ``OperationError`` — "the operation itself failed"

``LedgerUnderflow`` signals a broken acquire/release contract and is never
raised for ordinary caller input.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aumos_resource_proxy.authorization.identity import Identity, OperationKind


class ProxyError(Exception):
    """Base class for all resource proxy errors."""


class AccessDenied(ProxyError):
    """Raised when the authorization gate rejects an identity.

    Attributes
    ----------
    identity:
        The caller identity that was rejected.
    operation:
        The operation kind that was requested.
    resource_key:
        Key of the logical resource, if known.
    """

    def __init__(
        self,
        identity: "Identity",
        operation: "OperationKind",
        resource_key: str | None = None,
    ) -> None:
        self.identity = identity
        self.operation = operation
        self.resource_key = resource_key
        target = f" on '{resource_key}'" if resource_key else ""
        super().__init__(
            f"Identity '{identity.subject}' may not {operation.value}{target}."
        )


class InitError(ProxyError):
    """Raised when the resource factory fails to produce an instance.

    The original factory exception is chained as ``__cause__``.
    """

    def __init__(self, resource_key: str | None, message: str) -> None:
        self.resource_key = resource_key
        prefix = f"[{resource_key}] " if resource_key else ""
        super().__init__(f"{prefix}Resource initialisation failed: {message}")


class OperationError(ProxyError):
    """Raised when the underlying resource's own operation fails.

    Attributes
    ----------
    cause:
        The exception raised by the resource, unchanged.
    """

    def __init__(
        self,
        resource_key: str | None,
        operation: "OperationKind",
        cause: BaseException,
    ) -> None:
        self.resource_key = resource_key
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"{operation.value} on '{resource_key}' failed: {cause!r}"
        )


class LedgerUnderflow(ProxyError, RuntimeError):
    """Raised when a reference ledger is released more often than acquired."""


class WaitCancelled(ProxyError, TimeoutError):
    """Raised to a waiter that stopped waiting for an in-flight materialization."""
