"""Benchmark: ResourceProxy.operation latency — warm vs. cold path.

The warm path keeps one live handle open so every operation only touches the
gate, the ledger, and the box.  The cold path lets the ledger fall to zero
after each call, so every operation re-materializes the resource.
"""
from __future__ import annotations

import json
import time

from aumos_resource_proxy import (
    AuthorizationGate,
    Identity,
    OperationKind,
    PermissionPolicy,
    ResourceProxy,
    make_role_enum,
)

_WARMUP: int = 100
_ITERATIONS: int = 5_000

Role = make_role_enum(["READER"])
_READER = Identity("bench", frozenset({Role.READER}))


class _Document:
    def __init__(self) -> None:
        self.body = "x" * 1024

    def read(self, payload: object) -> int:
        return len(self.body)

    def write(self, payload: object) -> None:
        self.body += str(payload)


def _make_proxy() -> ResourceProxy:
    gate = AuthorizationGate(PermissionPolicy.from_table(Role, {"READER": {"read": True}}))
    return ResourceProxy.for_factory("bench-doc", _Document, gate)


def _measure(proxy: ResourceProxy) -> list[float]:
    for _ in range(_WARMUP):
        proxy.operation(_READER, OperationKind.READ)
    latencies_ms: list[float] = []
    for _ in range(_ITERATIONS):
        t0 = time.perf_counter()
        proxy.operation(_READER, OperationKind.READ)
        latencies_ms.append((time.perf_counter() - t0) * 1000)
    return latencies_ms


def _summarise(operation: str, latencies_ms: list[float]) -> dict[str, object]:
    sorted_lats = sorted(latencies_ms)
    n = len(sorted_lats)
    total = sum(latencies_ms) / 1000
    return {
        "operation": operation,
        "iterations": n,
        "total_seconds": round(total, 4),
        "ops_per_second": round(n / total, 1),
        "avg_latency_ms": round(sum(latencies_ms) / n, 4),
        "p99_latency_ms": round(sorted_lats[min(int(n * 0.99), n - 1)], 4),
    }


def bench_warm_operation_latency() -> dict[str, object]:
    """Per-call latency while a live handle keeps the resource materialized."""
    proxy = _make_proxy()
    with proxy.open(_READER, OperationKind.READ):
        result = _summarise("warm_operation_latency", _measure(proxy))
    print(
        f"[bench_operation_latency] {result['operation']}: "
        f"p99={result['p99_latency_ms']:.4f}ms  mean={result['avg_latency_ms']:.4f}ms"
    )
    return result


def bench_cold_operation_latency() -> dict[str, object]:
    """Per-call latency when every call re-materializes the resource."""
    result = _summarise("cold_operation_latency", _measure(_make_proxy()))
    print(
        f"[bench_operation_latency] {result['operation']}: "
        f"p99={result['p99_latency_ms']:.4f}ms  mean={result['avg_latency_ms']:.4f}ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the warm-path result dict."""
    return bench_warm_operation_latency()


if __name__ == "__main__":
    print(json.dumps([bench_warm_operation_latency(), bench_cold_operation_latency()], indent=2))
