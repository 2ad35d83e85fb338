"""Role-based authorization for the resource proxy.

Example
-------
::

    from aumos_resource_proxy.authorization import (
        AuthorizationGate, Identity, OperationKind, PermissionPolicy, make_role_enum,
    )

    Role = make_role_enum(["MEDICO", "USUARIO"])
    gate = AuthorizationGate(
        PermissionPolicy.from_table(Role, {"MEDICO": {"read": True}})
    )
    assert gate.check(Identity("ana", frozenset({Role.MEDICO})), OperationKind.READ)
"""
from __future__ import annotations

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

__all__ = [
    "AuthorizationGate",
    "AuthorizationResult",
    "Identity",
    "OperationKind",
    "PermissionPolicy",
    "PolicyConfigError",
    "PolicyLoader",
    "make_role_enum",
]
