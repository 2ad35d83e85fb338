"""YAML-based loader for permission policies.

PolicyLoader reads a policy document, builds the closed role enum it
declares, and returns an immutable :class:`PermissionPolicy`.

Schema
------
::

    version: "1.0"
    roles:
      - MEDICO
      - USUARIO
    rules:
      MEDICO:
        read: true
        write: true
      USUARIO:
        read: true
        write: false

Roles listed under ``rules`` must appear in ``roles``.  Any role/operation
pair without an explicit rule is denied.

Example
-------
::

    loader = PolicyLoader()
    policy = loader.load("/etc/proxy/policy.yaml")
    Role = policy.role_enum
    policy.allows(Role.MEDICO, OperationKind.READ)
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml

from aumos_resource_proxy.authorization.gate import PermissionPolicy
from aumos_resource_proxy.authorization.identity import make_role_enum

logger = logging.getLogger(__name__)

_SUPPORTED_VERSIONS: frozenset[str] = frozenset(["1.0", "1"])


class PolicyConfigError(ValueError):
    """Raised when a policy document is malformed or invalid.

    Attributes
    ----------
    config_path:
        The path to the document that caused the error, if known.
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        prefix = f"[{config_path}] " if config_path else ""
        super().__init__(f"{prefix}{message}")


class PolicyLoader:
    """Loads PermissionPolicy instances from YAML files or dicts.

    Parameters
    ----------
    strict:
        When ``True``, unknown top-level keys are an error. Default ``False``.
    """

    _KNOWN_TOP_KEYS: frozenset[str] = frozenset(
        ["version", "roles", "rules", "metadata", "description"]
    )

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    def load(self, config_path: str | Path) -> PermissionPolicy:
        """Load a policy from a YAML file on disk.

        Raises
        ------
        PolicyConfigError
            If the file cannot be parsed or is structurally invalid.
        FileNotFoundError
            If the file does not exist.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Policy file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as fh:
                raw: dict[str, object] = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise PolicyConfigError(
                f"Failed to parse YAML: {exc}", str(config_path)
            ) from exc

        return self._build_policy(raw, config_path=str(config_path))

    def load_from_dict(
        self,
        config: dict[str, object],
        config_path: str | None = None,
    ) -> PermissionPolicy:
        """Load a policy from an already-parsed document."""
        return self._build_policy(config, config_path=config_path)

    def load_from_yaml_string(
        self,
        yaml_string: str,
        config_path: str | None = None,
    ) -> PermissionPolicy:
        """Load a policy from YAML text."""
        try:
            raw: dict[str, object] = yaml.safe_load(yaml_string) or {}
        except yaml.YAMLError as exc:
            raise PolicyConfigError(
                f"Failed to parse YAML string: {exc}", config_path
            ) from exc
        return self._build_policy(raw, config_path=config_path)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_policy(
        self,
        raw: dict[str, object],
        config_path: str | None = None,
    ) -> PermissionPolicy:
        """Validate and build a PermissionPolicy from a raw document."""
        self._validate_structure(raw, config_path)

        version = str(raw.get("version", "1.0"))
        if version not in _SUPPORTED_VERSIONS:
            raise PolicyConfigError(
                f"Unsupported policy version {version!r}. "
                f"Supported: {sorted(_SUPPORTED_VERSIONS)}.",
                config_path,
            )

        try:
            role_enum = make_role_enum(raw["roles"])  # type: ignore[arg-type]
            policy = PermissionPolicy.from_table(role_enum, raw.get("rules") or {})  # type: ignore[arg-type]
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise PolicyConfigError(str(exc), config_path) from exc

        logger.info(
            "Loaded permission policy for %d roles from %s",
            len(role_enum),
            config_path or "<dict>",
        )
        return policy

    def _validate_structure(
        self,
        raw: dict[str, object],
        config_path: str | None,
    ) -> None:
        """Validate the top-level structure of the document."""
        if not isinstance(raw, dict):
            raise PolicyConfigError(
                "Policy document must be a YAML mapping (dict).", config_path
            )

        if not isinstance(raw.get("roles"), list):
            raise PolicyConfigError(
                "Policy document must contain a 'roles' list.", config_path
            )

        rules = raw.get("rules")
        if rules is not None and not isinstance(rules, dict):
            raise PolicyConfigError(
                "Policy 'rules' must be a mapping of role to grants.", config_path
            )
        for role_name, grants in (rules or {}).items():
            if not isinstance(grants, dict):
                raise PolicyConfigError(
                    f"Grants for role {role_name!r} must be a mapping.", config_path
                )

        if self._strict:
            unknown_keys = set(raw.keys()) - self._KNOWN_TOP_KEYS
            if unknown_keys:
                raise PolicyConfigError(
                    f"Unknown top-level keys: {sorted(unknown_keys)}. "
                    f"Known keys: {sorted(self._KNOWN_TOP_KEYS)}.",
                    config_path,
                )
