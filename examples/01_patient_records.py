#!/usr/bin/env python3
"""Example: Patient records — aumos-resource-proxy

Guards an expensive patient chart behind a role policy, materializes it on
first authorized access, and shows copy-on-write isolation between a proxy
and its copy.

Usage:
    python examples/01_patient_records.py

Requirements:
    pip install aumos-resource-proxy
"""
from __future__ import annotations

import time

import aumos_resource_proxy as rp


class PatientChart:
    def __init__(self, name: str) -> None:
        time.sleep(0.1)  # stands in for a slow record store
        self.name = name
        self.notes: list[str] = []

    def read(self, payload: object) -> dict[str, object]:
        return {"name": self.name, "notes": list(self.notes)}

    def write(self, payload: object) -> int:
        self.notes.append(str(payload))
        return len(self.notes)


def main() -> None:
    print(f"aumos-resource-proxy version: {rp.__version__}")

    # Step 1: Load a policy and build a registry
    policy = rp.PolicyLoader().load_from_dict({
        "roles": ["MEDICO", "USUARIO"],
        "rules": {
            "MEDICO": {"read": True, "write": True},
            "USUARIO": {"read": True, "write": False},
        },
    })
    Role = policy.role_enum
    registry = rp.ResourceRegistry(rp.AuthorizationGate(policy))
    chart = registry.proxy("Pedro Silva", factory=lambda: PatientChart("Pedro Silva"))

    medico = rp.Identity("dr-ana", frozenset({Role.MEDICO}))
    usuario = rp.Identity("joao", frozenset({Role.USUARIO}))

    # Step 2: Denied callers never trigger materialization
    try:
        chart.operation(usuario, rp.OperationKind.WRITE, "self-diagnosis")
    except rp.AccessDenied as exc:
        print(f"  [DENY] {exc}  state={chart.state.value}")

    # Step 3: Hold a handle, write, and copy
    with chart.open(medico, rp.OperationKind.READ) as record:
        chart.operation(medico, rp.OperationKind.WRITE, "penicillin allergy")
        print(f"  [ALLOW] notes={record.notes}  ledger={chart.ledger_count}")

        with chart.copy() as draft:
            draft.operation(medico, rp.OperationKind.WRITE, "draft note")
            print(f"  original={record.notes}")
            print(f"  draft={draft.operation(medico, rp.OperationKind.READ)['notes']}")

    # Step 4: Last release drops the instance
    print(f"  after release: state={chart.state.value} ledger={chart.ledger_count}")


if __name__ == "__main__":
    main()
