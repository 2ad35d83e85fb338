"""CLI entry point for aumos-resource-proxy.

Invoked as::

    resource-proxy [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m aumos_resource_proxy.cli.main

Commands
--------
- version       Show version information
- policy show   Render the permission table of a config or policy file
- policy check  Decide whether a set of roles may perform an operation
- audit show    Display recent access audit entries
"""
from __future__ import annotations

import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from aumos_resource_proxy.authorization.gate import AuthorizationGate, PermissionPolicy
from aumos_resource_proxy.authorization.identity import Identity, OperationKind
from aumos_resource_proxy.authorization.policy_loader import PolicyConfigError, PolicyLoader
from aumos_resource_proxy.config import ConfigLoader

console = Console()
err_console = Console(stderr=True)

_DEFAULT_CONFIG = Path("resource_proxy.yaml")


def _load_policy(config_path: str | None, policy_path: str | None) -> PermissionPolicy:
    """Load a policy from a standalone policy file or from a proxy config."""
    try:
        if policy_path:
            return PolicyLoader().load(policy_path)
        cfg_path = Path(config_path) if config_path else _DEFAULT_CONFIG
        return ConfigLoader().load(cfg_path).build_policy()
    except FileNotFoundError as exc:
        err_console.print(f"[red]Not found:[/red] {exc}")
        sys.exit(2)
    except (PolicyConfigError, ValueError) as exc:
        err_console.print(f"[red]Invalid policy:[/red] {exc}")
        sys.exit(2)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="aumos-resource-proxy")
def cli() -> None:
    """Resource Proxy CLI — inspect policies and access audit logs."""


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from aumos_resource_proxy import __version__

    console.print(
        Panel(
            f"[bold]aumos-resource-proxy[/bold]  v[cyan]{__version__}[/cyan]\n"
            "Access-controlled lazy resource proxy.",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# policy group
# ---------------------------------------------------------------------------

_config_option = click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(),
    help=f"Path to the proxy config (default: {_DEFAULT_CONFIG}).",
)
_policy_option = click.option(
    "--policy",
    "-p",
    "policy_path",
    default=None,
    type=click.Path(),
    help="Path to a standalone policy file; overrides --config.",
)


@cli.group(name="policy")
def policy_group() -> None:
    """Permission policy commands."""


@policy_group.command(name="show")
@_config_option
@_policy_option
def policy_show_command(config_path: str | None, policy_path: str | None) -> None:
    """Render the full (role, operation) permission table."""
    policy = _load_policy(config_path, policy_path)

    table = Table(title="Permission Policy", box=box.SIMPLE)
    table.add_column("Role", style="cyan")
    for op in OperationKind:
        table.add_column(op.value.upper(), justify="center")

    for role_name, grants in policy.summary().items():
        cells = [
            "[green]allow[/green]" if grants[op.value] else "[red]deny[/red]"
            for op in OperationKind
        ]
        table.add_row(role_name, *cells)

    console.print(table)


@policy_group.command(name="check")
@click.option("--role", "-r", "roles", multiple=True, required=True, help="Role held by the caller (repeatable).")
@click.option(
    "--op",
    "-o",
    "operation",
    required=True,
    type=click.Choice([op.value for op in OperationKind], case_sensitive=False),
    help="Operation kind to check.",
)
@click.option("--subject", "-s", default="cli", show_default=True, help="Caller subject for messages.")
@_config_option
@_policy_option
def policy_check_command(
    roles: tuple[str, ...],
    operation: str,
    subject: str,
    config_path: str | None,
    policy_path: str | None,
) -> None:
    """Decide whether ROLEs may perform an operation.  Exit 0 on allow, 1 on deny."""
    policy = _load_policy(config_path, policy_path)
    role_enum = policy.role_enum

    members = []
    for name in roles:
        if name in role_enum.__members__:
            members.append(role_enum[name])
        else:
            err_console.print(f"[yellow]Warning:[/yellow] Unknown role '{name}' is denied.")

    gate = AuthorizationGate(policy)
    result = gate.evaluate(Identity(subject, frozenset(members)), OperationKind.parse(operation))

    status_str = "[green]ALLOWED[/green]" if result.allowed else "[red]DENIED[/red]"
    console.print(Panel(status_str, title="Authorization Result", border_style="blue"))
    console.print(f"  Reason: {result.reason}")
    sys.exit(0 if result.allowed else 1)


# ---------------------------------------------------------------------------
# audit group
# ---------------------------------------------------------------------------


@cli.group(name="audit")
def audit_group() -> None:
    """Access audit log commands."""


@audit_group.command(name="show")
@click.option("--last", "-n", default=20, show_default=True, type=int, help="Number of recent entries to show.")
@click.option(
    "--log",
    "-l",
    "log_path",
    default=None,
    type=click.Path(),
    help="Path to the audit log; defaults to the one in --config.",
)
@_config_option
def audit_show_command(last: int, log_path: str | None, config_path: str | None) -> None:
    """Show recent access audit entries."""
    from aumos_resource_proxy.audit.logger import AccessAuditLog

    if log_path is None:
        loader = ConfigLoader()
        cfg_path = Path(config_path) if config_path else _DEFAULT_CONFIG
        config = loader.load(cfg_path) if cfg_path.exists() else loader.defaults()
        resolved = config.audit.log_path
    else:
        resolved = Path(log_path)

    audit = AccessAuditLog(log_path=resolved)
    records = audit.last_n(last)

    if not records:
        console.print("[yellow]No audit entries found.[/yellow]")
        return

    table = Table(title=f"Last {last} Access Events", box=box.SIMPLE)
    table.add_column("Timestamp", style="dim", no_wrap=True)
    table.add_column("Event", style="cyan")
    table.add_column("Resource", style="magenta")
    table.add_column("Subject")
    table.add_column("Op")
    table.add_column("Outcome")

    for record in records:
        ts = str(record.get("timestamp", ""))[:19].replace("T", " ")
        if record.get("event") == "access":
            outcome = "[green]allow[/green]" if record.get("allowed") else "[red]deny[/red]"
        else:
            outcome = str(record.get("error", ""))
        table.add_row(
            ts,
            str(record.get("event", "")),
            str(record.get("resource", "")),
            str(record.get("subject", "")),
            str(record.get("operation", "")),
            outcome,
        )

    console.print(table)
    console.print(f"  Total audit records: [cyan]{audit.count()}[/cyan]")


if __name__ == "__main__":
    cli()
