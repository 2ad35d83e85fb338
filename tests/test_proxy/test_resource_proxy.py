"""Tests for ResourceProxy."""
from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any

import pytest

from aumos_resource_proxy.audit.logger import AccessAuditLog
from aumos_resource_proxy.authorization.gate import AuthorizationGate, PermissionPolicy
from aumos_resource_proxy.authorization.identity import (
    Identity,
    OperationKind,
    make_role_enum,
)
from aumos_resource_proxy.errors import (
    AccessDenied,
    InitError,
    OperationError,
    ProxyError,
    WaitCancelled,
)
from aumos_resource_proxy.proxy.resource_proxy import ProxyState, Resource, ResourceProxy


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

Role = make_role_enum(["MEDICO", "USUARIO", "AUDITOR"])


class PatientRecord:
    """Minimal resource: a patient chart with read/write operations."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.entries: list[str] = []

    def read(self, payload: Any) -> dict[str, object]:
        if payload == "explode":
            raise LookupError("chart section missing")
        return {"name": self.name, "entries": list(self.entries)}

    def write(self, payload: Any) -> int:
        self.entries.append(str(payload))
        return len(self.entries)


class RecordFactory:
    def __init__(self, name: str = "Pedro Silva", fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.calls = 0

    def __call__(self) -> PatientRecord:
        self.calls += 1
        if self.fail:
            raise OSError("record store offline")
        return PatientRecord(self.name)


@pytest.fixture()
def gate() -> AuthorizationGate:
    return AuthorizationGate(
        PermissionPolicy.from_table(
            Role,
            {
                "MEDICO": {"read": True, "write": True},
                "USUARIO": {"read": True, "write": False},
            },
        )
    )


@pytest.fixture()
def factory() -> RecordFactory:
    return RecordFactory()


@pytest.fixture()
def proxy(factory: RecordFactory, gate: AuthorizationGate) -> ResourceProxy:
    return ResourceProxy.for_factory("Pedro Silva", factory, gate)


MEDICO = Identity("dr-ana", frozenset({Role.MEDICO}))
USUARIO = Identity("joao", frozenset({Role.USUARIO}))
AUDITOR = Identity("carla", frozenset({Role.AUDITOR}))


# ---------------------------------------------------------------------------
# Authorization ordering
# ---------------------------------------------------------------------------


class TestAuthorizationFirst:
    def test_denied_write_raises(self, proxy: ResourceProxy) -> None:
        with pytest.raises(AccessDenied):
            proxy.operation(USUARIO, OperationKind.WRITE, "note")

    def test_denied_never_materializes(
        self, proxy: ResourceProxy, factory: RecordFactory
    ) -> None:
        with pytest.raises(AccessDenied):
            proxy.operation(USUARIO, OperationKind.WRITE, "note")
        assert factory.calls == 0
        assert proxy.state is ProxyState.UNMATERIALIZED

    @pytest.mark.parametrize("op", list(OperationKind))
    def test_unprivileged_identity_leaves_ledger_untouched(
        self, proxy: ResourceProxy, op: OperationKind
    ) -> None:
        with pytest.raises(AccessDenied):
            proxy.operation(AUDITOR, op)
        assert proxy.ledger_count == 0

    def test_denied_with_failing_factory_still_access_denied(
        self, gate: AuthorizationGate
    ) -> None:
        broken = ResourceProxy.for_factory("x", RecordFactory(fail=True), gate)
        with pytest.raises(AccessDenied):
            broken.operation(AUDITOR, OperationKind.READ)

    def test_bare_string_role_gets_access_denied(
        self, proxy: ResourceProxy, factory: RecordFactory
    ) -> None:
        impostor = Identity("mallory", frozenset({"MEDICO"}))  # type: ignore[arg-type]
        with pytest.raises(AccessDenied):
            proxy.operation(impostor, OperationKind.READ)
        assert factory.calls == 0
        assert proxy.ledger_count == 0


# ---------------------------------------------------------------------------
# Reads, writes, and the ledger
# ---------------------------------------------------------------------------


class TestOperations:
    def test_read_returns_resource_data(self, proxy: ResourceProxy) -> None:
        assert proxy.operation(MEDICO, OperationKind.READ) == {
            "name": "Pedro Silva",
            "entries": [],
        }

    def test_string_operation_accepted(self, proxy: ResourceProxy) -> None:
        assert proxy.operation(MEDICO, "read")["name"] == "Pedro Silva"

    def test_ledger_returns_to_zero(self, proxy: ResourceProxy) -> None:
        proxy.operation(MEDICO, OperationKind.READ)
        assert proxy.ledger_count == 0

    def test_release_resets_to_unmaterialized(self, proxy: ResourceProxy) -> None:
        proxy.operation(MEDICO, OperationKind.READ)
        assert proxy.state is ProxyState.UNMATERIALIZED

    def test_next_access_rematerializes(
        self, proxy: ResourceProxy, factory: RecordFactory
    ) -> None:
        proxy.operation(MEDICO, OperationKind.WRITE, "fever")
        result = proxy.operation(MEDICO, OperationKind.READ)
        assert factory.calls == 2
        assert result["entries"] == []

    def test_open_holds_a_live_handle(
        self, proxy: ResourceProxy, factory: RecordFactory
    ) -> None:
        with proxy.open(MEDICO, OperationKind.READ) as record:
            assert proxy.ledger_count == 1
            assert proxy.state is ProxyState.MATERIALIZED
            proxy.operation(MEDICO, OperationKind.WRITE, "fever")
            assert record.entries == ["fever"]
            assert proxy.ledger_count == 1
        assert proxy.ledger_count == 0
        assert factory.calls == 1

    def test_nested_handles_balance(self, proxy: ResourceProxy) -> None:
        with proxy.open(MEDICO, OperationKind.READ):
            with proxy.open(USUARIO, OperationKind.READ):
                assert proxy.ledger_count == 2
            assert proxy.ledger_count == 1
        assert proxy.ledger_count == 0

    def test_open_checks_authorization(self, proxy: ResourceProxy) -> None:
        with pytest.raises(AccessDenied):
            with proxy.open(USUARIO, OperationKind.WRITE):
                pass  # pragma: no cover
        assert proxy.ledger_count == 0

    def test_patient_record_satisfies_protocol(self) -> None:
        assert isinstance(PatientRecord("x"), Resource)


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class TestErrors:
    def test_init_error_propagates(self, gate: AuthorizationGate) -> None:
        broken = ResourceProxy.for_factory("x", RecordFactory(fail=True), gate)
        with pytest.raises(InitError) as exc_info:
            broken.operation(MEDICO, OperationKind.READ)
        assert isinstance(exc_info.value.__cause__, OSError)
        assert broken.ledger_count == 0
        assert broken.state is ProxyState.UNMATERIALIZED

    def test_init_retry_by_caller(self, gate: AuthorizationGate) -> None:
        factory = RecordFactory(fail=True)
        flaky = ResourceProxy.for_factory("x", factory, gate)
        with pytest.raises(InitError):
            flaky.operation(MEDICO, OperationKind.READ)
        factory.fail = False
        assert flaky.operation(MEDICO, OperationKind.READ)["name"] == "Pedro Silva"
        assert factory.calls == 2

    def test_operation_error_wraps_cause(self, proxy: ResourceProxy) -> None:
        with pytest.raises(OperationError) as exc_info:
            proxy.operation(MEDICO, OperationKind.READ, "explode")
        assert isinstance(exc_info.value.cause, LookupError)
        assert exc_info.value.operation is OperationKind.READ

    def test_operation_error_still_releases(self, proxy: ResourceProxy) -> None:
        with pytest.raises(OperationError):
            proxy.operation(MEDICO, OperationKind.READ, "explode")
        assert proxy.ledger_count == 0

    def test_errors_are_distinguishable(self) -> None:
        kinds = {AccessDenied, InitError, OperationError}
        for kind in kinds:
            assert issubclass(kind, ProxyError)
            for other in kinds - {kind}:
                assert not issubclass(kind, other)


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_concurrent_reads_share_one_materialization(
        self, gate: AuthorizationGate
    ) -> None:
        calls: list[int] = []
        instances: list[int] = []
        hold_open = threading.Barrier(2)

        def slow_factory() -> PatientRecord:
            calls.append(1)
            time.sleep(0.1)
            return PatientRecord("Pedro Silva")

        proxy = ResourceProxy.for_factory("Pedro Silva", slow_factory, gate)

        def reader() -> None:
            with proxy.open(MEDICO, OperationKind.READ) as record:
                instances.append(id(record))
                hold_open.wait(timeout=5)

        started = time.perf_counter()
        threads = [threading.Thread(target=reader) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)
        elapsed = time.perf_counter() - started

        assert len(calls) == 1
        assert len(set(instances)) == 1
        assert elapsed < 0.19
        assert proxy.ledger_count == 0

    @pytest.mark.parametrize("attempt", range(10))
    def test_concurrent_operations_share_one_materialization(
        self, gate: AuthorizationGate, attempt: int
    ) -> None:
        factory = RecordFactory()
        start = threading.Barrier(8)
        results: list[object] = []

        def slow_factory() -> PatientRecord:
            record = factory()
            time.sleep(0.05)
            return record

        proxy = ResourceProxy.for_factory("Pedro Silva", slow_factory, gate)

        def reader() -> None:
            start.wait(timeout=5)
            results.append(proxy.operation(MEDICO, OperationKind.READ))

        threads = [threading.Thread(target=reader) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert factory.calls == 1
        assert len(results) == 8
        assert proxy.ledger_count == 0
        assert proxy.state is ProxyState.UNMATERIALIZED

    def test_waiter_that_times_out_holds_no_count(self, gate: AuthorizationGate) -> None:
        release_factory = threading.Event()
        outcomes: list[BaseException] = []

        def gated_factory() -> PatientRecord:
            release_factory.wait(timeout=5)
            return PatientRecord("Pedro Silva")

        proxy = ResourceProxy.for_factory("Pedro Silva", gated_factory, gate, init_timeout=0.05)

        def initiator() -> None:
            proxy.operation(MEDICO, OperationKind.READ)

        first = threading.Thread(target=initiator)
        first.start()
        deadline = time.monotonic() + 5
        while proxy.state is not ProxyState.MATERIALIZING and time.monotonic() < deadline:
            time.sleep(0.001)
        try:
            proxy.operation(USUARIO, OperationKind.READ)
        except WaitCancelled as exc:
            outcomes.append(exc)
        release_factory.set()
        first.join(timeout=5)

        assert len(outcomes) == 1
        assert proxy.ledger_count == 0
        assert proxy.state is ProxyState.UNMATERIALIZED

    def test_ledger_balanced_under_load(self, proxy: ResourceProxy) -> None:
        errors: list[BaseException] = []

        def worker(identity: Identity, op: OperationKind) -> None:
            for i in range(50):
                try:
                    proxy.operation(identity, op, f"entry-{i}")
                except AccessDenied:
                    pass
                except BaseException as exc:  # collected for assertions
                    errors.append(exc)

        threads = [
            threading.Thread(target=worker, args=(MEDICO, OperationKind.WRITE)),
            threading.Thread(target=worker, args=(MEDICO, OperationKind.READ)),
            threading.Thread(target=worker, args=(USUARIO, OperationKind.WRITE)),
            threading.Thread(target=worker, args=(USUARIO, OperationKind.READ)),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert errors == []
        assert proxy.ledger_count == 0
        assert proxy.state is ProxyState.UNMATERIALIZED


# ---------------------------------------------------------------------------
# Copying (copy-on-write)
# ---------------------------------------------------------------------------


class TestCopy:
    def test_copy_of_unmaterialized_is_independent(
        self, proxy: ResourceProxy, factory: RecordFactory
    ) -> None:
        twin = proxy.copy()
        assert twin.state is ProxyState.UNMATERIALIZED
        assert twin.ledger_count == 0
        twin.operation(MEDICO, OperationKind.READ)
        assert factory.calls == 1
        assert proxy.state is ProxyState.UNMATERIALIZED

    def test_copy_shares_instance(self, proxy: ResourceProxy, factory: RecordFactory) -> None:
        with proxy.open(MEDICO, OperationKind.READ) as original:
            with proxy.copy() as twin:
                assert proxy.share_count == 2
                with twin.open(MEDICO, OperationKind.READ) as shared:
                    assert shared is original
        assert factory.calls == 1

    def test_write_through_copy_is_isolated(self, proxy: ResourceProxy) -> None:
        with proxy.open(MEDICO, OperationKind.READ) as original:
            with proxy.copy() as twin:
                twin.operation(MEDICO, OperationKind.WRITE, "penicillin allergy")
                assert original.entries == []
                assert twin.operation(MEDICO, OperationKind.READ)["entries"] == [
                    "penicillin allergy"
                ]
                assert proxy.share_count == 1
                assert twin.share_count == 1

    def test_copy_pins_until_closed(self, proxy: ResourceProxy) -> None:
        with proxy.open(MEDICO, OperationKind.READ):
            twin = proxy.copy()
        assert twin.ledger_count == 1
        assert twin.state is ProxyState.MATERIALIZED
        twin.close()
        twin.close()
        assert twin.ledger_count == 0
        assert twin.state is ProxyState.UNMATERIALIZED

    def test_original_release_leaves_copy_sole_owner(self, proxy: ResourceProxy) -> None:
        with proxy.open(MEDICO, OperationKind.READ):
            twin = proxy.copy()
            assert twin.share_count == 2
        assert twin.share_count == 1
        with twin.open(MEDICO, OperationKind.WRITE) as record:
            record.entries.append("in place")
        assert twin.operation(MEDICO, OperationKind.READ)["entries"] == ["in place"]
        twin.close()


# ---------------------------------------------------------------------------
# Audit integration
# ---------------------------------------------------------------------------


class TestAudit:
    def test_decisions_and_failures_logged(
        self, gate: AuthorizationGate, tmp_path: Path
    ) -> None:
        audit = AccessAuditLog(tmp_path / "access.jsonl")
        proxy = ResourceProxy.for_factory(
            "Pedro Silva", RecordFactory(), gate, audit=audit
        )
        proxy.operation(MEDICO, OperationKind.READ)
        with pytest.raises(AccessDenied):
            proxy.operation(USUARIO, OperationKind.WRITE)
        with pytest.raises(OperationError):
            proxy.operation(MEDICO, OperationKind.READ, "explode")

        access = audit.query({"event": "access"})
        assert [r["allowed"] for r in access] == [True, False, True]
        failures = audit.query({"event": "operation_failed"})
        assert len(failures) == 1
        assert failures[0]["resource"] == "Pedro Silva"

    def test_init_failure_logged(self, gate: AuthorizationGate, tmp_path: Path) -> None:
        audit = AccessAuditLog(tmp_path / "access.jsonl")
        proxy = ResourceProxy.for_factory("x", RecordFactory(fail=True), gate, audit=audit)
        with pytest.raises(InitError):
            proxy.operation(MEDICO, OperationKind.READ)
        assert audit.query({"event": "init_failed"})[0]["subject"] == "dr-ana"
