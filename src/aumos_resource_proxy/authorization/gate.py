"""Role-based authorization gate.

PermissionPolicy is an immutable, total mapping from ``(role, operation)`` to
allow/deny.  Any pair missing from the table resolves to deny, as do roles
that belong to a different role enum than the one the policy was built for.

AuthorizationGate evaluates an :class:`Identity` against the policy.  It is a
pure lookup: no I/O, no locking, no side effects, so the proxy can call it
before doing any materialization work.

Example
-------
::

    Role = make_role_enum(["MEDICO", "USUARIO"])
    policy = PermissionPolicy.from_table(Role, {
        "MEDICO": {"read": True, "write": True},
        "USUARIO": {"read": True},
    })
    gate = AuthorizationGate(policy)
    gate.check(Identity("ana", frozenset({Role.USUARIO})), OperationKind.WRITE)
    # -> False
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from aumos_resource_proxy.authorization.identity import Identity, OperationKind
from aumos_resource_proxy.errors import AccessDenied

logger = logging.getLogger(__name__)


def _role_name(role: object) -> str:
    return str(getattr(role, "name", role))


# ---------------------------------------------------------------------------
# AuthorizationResult
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorizationResult:
    """Immutable result of an authorization check.

    Attributes
    ----------
    allowed:
        Whether the operation is permitted.
    operation:
        The operation kind that was checked.
    subject:
        Subject of the identity that was evaluated.
    reason:
        Human-readable explanation of the decision.
    matched_role:
        Name of the role that granted access, or ``None`` on deny.
    """

    allowed: bool
    operation: OperationKind
    subject: str
    reason: str
    matched_role: str | None = None

    def __bool__(self) -> bool:
        """Return True if the operation is allowed."""
        return self.allowed


# ---------------------------------------------------------------------------
# PermissionPolicy
# ---------------------------------------------------------------------------


class PermissionPolicy:
    """Total ``(role, operation) -> bool`` table for one role enum.

    Parameters
    ----------
    role_enum:
        The closed enum of roles this policy covers.
    grants:
        Mapping of ``(role, operation)`` pairs to allow (True) / deny (False).
        Pairs left out are denied.

    Raises
    ------
    ValueError
        If a key uses a role outside *role_enum*.
    """

    def __init__(
        self,
        role_enum: type[Enum],
        grants: Mapping[tuple[Enum, OperationKind], bool] | None = None,
    ) -> None:
        table: dict[tuple[Enum, OperationKind], bool] = {
            (role, op): False for role in role_enum for op in OperationKind
        }
        for (role, op), allowed in (grants or {}).items():
            if not isinstance(role, role_enum):
                raise ValueError(
                    f"Role {role!r} is not a member of {role_enum.__name__}."
                )
            table[(role, OperationKind.parse(op))] = bool(allowed)
        self._role_enum = role_enum
        self._table = MappingProxyType(table)

    @classmethod
    def from_table(
        cls,
        role_enum: type[Enum],
        table: Mapping[str, Mapping[str, bool]],
    ) -> PermissionPolicy:
        """Build a policy from ``{role_name: {operation: allow}}``.

        Raises
        ------
        ValueError
            If a role name or operation is unknown, or a value is not a bool.
        """
        grants: dict[tuple[Enum, OperationKind], bool] = {}
        for role_name, ops in table.items():
            try:
                role = role_enum[role_name]
            except KeyError:
                raise ValueError(
                    f"Unknown role {role_name!r}. "
                    f"Declared: {[r.name for r in role_enum]}."
                ) from None
            for op_name, allowed in ops.items():
                if not isinstance(allowed, bool):
                    raise ValueError(
                        f"Grant for {role_name}:{op_name} must be a boolean; "
                        f"got {allowed!r}."
                    )
                grants[(role, OperationKind.parse(op_name))] = allowed
        return cls(role_enum, grants)

    @property
    def role_enum(self) -> type[Enum]:
        return self._role_enum

    def allows(self, role: Enum, operation: OperationKind) -> bool:
        """Return the grant for ``(role, operation)``; unknown roles deny."""
        # str-valued members of another enum (or bare strings) hash equal.
        if not isinstance(role, self._role_enum):
            return False
        return self._table.get((role, operation), False)

    def grants_for(self, role: Enum) -> dict[OperationKind, bool]:
        return {op: self.allows(role, op) for op in OperationKind}

    def summary(self) -> dict[str, dict[str, bool]]:
        """Return a plain dict of the full table keyed by role name."""
        return {
            role.name: {op.value: self.allows(role, op) for op in OperationKind}
            for role in self._role_enum
        }


# ---------------------------------------------------------------------------
# AuthorizationGate
# ---------------------------------------------------------------------------


class AuthorizationGate:
    """Decides whether an identity may perform an operation kind.

    An identity is allowed when at least one of its roles is granted the
    operation.  Roles are iterated in name order so that ``matched_role`` is
    stable across runs.
    """

    def __init__(self, policy: PermissionPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> PermissionPolicy:
        return self._policy

    def check(self, identity: Identity, operation: OperationKind | str) -> bool:
        """Return True if *identity* may perform *operation*."""
        return self.evaluate(identity, operation).allowed

    def evaluate(
        self, identity: Identity, operation: OperationKind | str
    ) -> AuthorizationResult:
        """Evaluate *identity* and return a detailed result.

        Roles outside the policy's role enum, bare strings included, are
        never granted anything.
        """
        op = OperationKind.parse(operation)
        for role in sorted(identity.roles, key=_role_name):
            if self._policy.allows(role, op):
                return AuthorizationResult(
                    allowed=True,
                    operation=op,
                    subject=identity.subject,
                    reason=f"Role '{_role_name(role)}' is granted {op.value}.",
                    matched_role=_role_name(role),
                )
        role_names = sorted(_role_name(r) for r in identity.roles)
        return AuthorizationResult(
            allowed=False,
            operation=op,
            subject=identity.subject,
            reason=f"No role in {role_names} is granted {op.value}.",
        )

    def require(
        self,
        identity: Identity,
        operation: OperationKind | str,
        resource_key: str | None = None,
    ) -> AuthorizationResult:
        """Return the allow result, or raise :class:`AccessDenied`."""
        op = OperationKind.parse(operation)
        result = self.evaluate(identity, op)
        if not result.allowed:
            logger.warning(
                "Access DENIED: subject=%s op=%s resource=%s",
                identity.subject,
                op.value,
                resource_key,
            )
            raise AccessDenied(identity, op, resource_key)
        return result
