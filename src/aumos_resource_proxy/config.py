"""Proxy configuration loader with Pydantic v2 validation.

Loads and validates a ``resource_proxy.yaml`` file into a typed
:class:`ProxyConfig`.  Unknown keys are allowed so newer files keep loading
on older releases.

Example
-------
>>> loader = ConfigLoader()
>>> config = loader.load_string('''
... policy:
...   roles: [MEDICO, USUARIO]
...   rules:
...     MEDICO: {read: true}
... ''')
>>> config.policy.roles
['MEDICO', 'USUARIO']
"""
from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from aumos_resource_proxy.authorization.gate import PermissionPolicy
from aumos_resource_proxy.authorization.identity import OperationKind, make_role_enum


class PolicyConfig(BaseModel):
    """Role declarations and the ``(role, operation)`` grant table."""

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    roles: list[str] = Field(default_factory=list)
    rules: dict[str, dict[str, bool]] = Field(default_factory=dict)

    @field_validator("roles")
    @classmethod
    def roles_must_be_unique(cls, values: list[str]) -> list[str]:
        if len(set(values)) != len(values):
            raise ValueError(f"Duplicate role names in {values}")
        return values

    @model_validator(mode="after")
    def rules_must_reference_declared_roles(self) -> PolicyConfig:
        valid_ops = {op.value for op in OperationKind}
        for role_name, grants in self.rules.items():
            if role_name not in self.roles:
                raise ValueError(f"Rule for undeclared role '{role_name}'")
            for op_name in grants:
                if op_name.lower() not in valid_ops:
                    raise ValueError(
                        f"Unknown operation '{op_name}' for role '{role_name}'. "
                        f"Valid: {sorted(valid_ops)}"
                    )
        return self


class LifecycleConfig(BaseModel):
    """Materialization settings."""

    model_config = {"extra": "allow"}

    init_timeout_seconds: float | None = Field(default=None, gt=0)


class AuditConfig(BaseModel):
    """Configuration for the access audit log."""

    model_config = {"extra": "allow"}

    enabled: bool = Field(default=False)
    log_path: Path = Field(default=Path("./resource_access.jsonl"))


class ProxyConfig(BaseModel):
    """Top-level resource proxy configuration.

    All sections are optional and fall back to defaults.  An empty policy
    declares no roles, so every request is denied.
    """

    model_config = {"extra": "allow"}

    version: str = Field(default="1")
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    def build_policy(self) -> PermissionPolicy:
        """Build the immutable permission policy declared in ``policy``."""
        role_enum = make_role_enum(self.policy.roles or ["NOBODY"])
        return PermissionPolicy.from_table(role_enum, self.policy.rules)


class ConfigLoader:
    """Loads and validates resource proxy YAML configuration."""

    def load(self, config_path: Path) -> ProxyConfig:
        """Load and validate a configuration file.

        Raises
        ------
        FileNotFoundError:
            When the file does not exist.
        ValueError:
            When the content fails Pydantic validation.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Proxy config not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as fh:
            raw: dict[str, object] = yaml.safe_load(fh) or {}

        return ProxyConfig.model_validate(raw)

    def load_string(self, yaml_content: str) -> ProxyConfig:
        """Load and validate YAML text directly."""
        raw: dict[str, object] = yaml.safe_load(yaml_content) or {}
        return ProxyConfig.model_validate(raw)

    def defaults(self) -> ProxyConfig:
        """Return a configuration with all defaults applied."""
        return ProxyConfig()
