"""Caller identities, roles, and operation kinds.

Roles form a closed ``str`` enum per deployment.  Applications either declare
their own ``Enum`` subclass or build one from configuration with
:func:`make_role_enum`:

>>> Role = make_role_enum(["MEDICO", "USUARIO"])
>>> identity = Identity("dr-ana", frozenset({Role.MEDICO}))
>>> identity.has_role(Role.MEDICO)
True
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable


class OperationKind(str, Enum):
    """Classes of operation the gate decides on."""

    READ = "read"
    WRITE = "write"

    @classmethod
    def parse(cls, value: "str | OperationKind") -> OperationKind:
        """Return the member for *value*, accepting names or values in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if text.lower() == member.value or text.upper() == member.name:
                return member
        raise ValueError(
            f"Unknown operation kind {value!r}. Valid: {[m.value for m in cls]}."
        )


def make_role_enum(names: Iterable[str], enum_name: str = "Role") -> type[Enum]:
    """Build a closed ``str`` enum of role names.

    Parameters
    ----------
    names:
        Role names.  Each becomes both the member name and its value.
    enum_name:
        Class name of the generated enum.

    Raises
    ------
    ValueError
        If *names* is empty, contains blanks, or contains duplicates.
    """
    role_names = [str(n).strip() for n in names]
    if not role_names:
        raise ValueError("At least one role must be declared.")
    if any(not n for n in role_names):
        raise ValueError("Role names must not be empty.")
    if len(set(role_names)) != len(role_names):
        raise ValueError(f"Duplicate role names in {role_names}.")
    return Enum(enum_name, [(n, n) for n in role_names], type=str)  # type: ignore[return-value]


@dataclass(frozen=True)
class Identity:
    """Opaque caller token carrying a role set.

    Attributes
    ----------
    subject:
        Identifier of the authenticated caller (user id, service name).
    roles:
        Roles granted to the caller.  Members of the deployment's role enum.
    """

    subject: str
    roles: frozenset[Enum] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.roles, frozenset):
            object.__setattr__(self, "roles", frozenset(self.roles))

    def has_role(self, role: Enum) -> bool:
        return role in self.roles
