#!/usr/bin/env python3
"""Example: Async proxies and a YAML config — aumos-resource-proxy

Builds a registry from a YAML config, then runs several concurrent readers
against one async proxy.  The coroutine factory runs exactly once; all
readers share the result.

Usage:
    python examples/02_async_proxy.py

Requirements:
    pip install aumos-resource-proxy
"""
from __future__ import annotations

import asyncio

import aumos_resource_proxy as rp

_CONFIG = """
policy:
  roles: [ANALYST, GUEST]
  rules:
    ANALYST: {read: true, write: true}
    GUEST: {read: false, write: false}
lifecycle:
  init_timeout_seconds: 2.0
"""


class Ledger:
    def __init__(self) -> None:
        self.entries: list[float] = [120.0, -40.5]

    async def read(self, payload: object) -> float:
        return sum(self.entries)

    def write(self, payload: object) -> None:
        self.entries.append(float(payload))  # type: ignore[arg-type]


async def load_ledger() -> Ledger:
    print("  [factory] loading ledger ...")
    await asyncio.sleep(0.1)
    return Ledger()


async def main() -> None:
    config = rp.ConfigLoader().load_string(_CONFIG)
    registry = rp.ResourceRegistry.from_config(config)
    Role = registry.gate.policy.role_enum

    ledger = registry.async_proxy("ledger-2026", factory=load_ledger)
    analyst = rp.Identity("ana", frozenset({Role.ANALYST}))
    guest = rp.Identity("visitor", frozenset({Role.GUEST}))

    balances = await asyncio.gather(
        *(ledger.operation(analyst, "read") for _ in range(5))
    )
    print(f"  [ALLOW] five concurrent reads -> {balances}")

    try:
        await ledger.operation(guest, "read")
    except rp.AccessDenied as exc:
        print(f"  [DENY] {exc}")

    print(f"  registry: {registry.summary()}")


if __name__ == "__main__":
    asyncio.run(main())
