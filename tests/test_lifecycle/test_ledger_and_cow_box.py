"""Tests for ReferenceLedger and CowBox."""
from __future__ import annotations

import threading

import pytest

from aumos_resource_proxy.errors import LedgerUnderflow
from aumos_resource_proxy.lifecycle.cow_box import CowBox
from aumos_resource_proxy.lifecycle.ledger import ReferenceLedger


# ---------------------------------------------------------------------------
# ReferenceLedger
# ---------------------------------------------------------------------------


class TestLedgerCounting:
    def test_starts_at_zero(self) -> None:
        assert ReferenceLedger().count == 0

    def test_acquire_returns_new_count(self) -> None:
        ledger = ReferenceLedger()
        assert ledger.acquire() == 1
        assert ledger.acquire() == 2

    def test_release_returns_new_count(self) -> None:
        ledger = ReferenceLedger()
        ledger.acquire()
        ledger.acquire()
        assert ledger.release() == 1

    def test_on_zero_fires_once_per_crossing(self) -> None:
        calls: list[int] = []
        ledger = ReferenceLedger(on_zero=lambda: calls.append(1))
        ledger.acquire()
        ledger.acquire()
        ledger.release()
        assert calls == []
        ledger.release()
        assert calls == [1]

    def test_on_zero_fires_again_after_reacquire(self) -> None:
        calls: list[int] = []
        ledger = ReferenceLedger(on_zero=lambda: calls.append(1))
        for _ in range(3):
            ledger.acquire()
            ledger.release()
        assert len(calls) == 3


class TestLedgerUnderflow:
    def test_release_at_zero_raises(self) -> None:
        with pytest.raises(LedgerUnderflow):
            ReferenceLedger(name="r").release()

    def test_underflow_is_runtime_error(self) -> None:
        assert issubclass(LedgerUnderflow, RuntimeError)

    def test_count_stays_zero_after_underflow(self) -> None:
        ledger = ReferenceLedger()
        with pytest.raises(LedgerUnderflow):
            ledger.release()
        assert ledger.count == 0


class TestLedgerHold:
    def test_hold_balances(self) -> None:
        ledger = ReferenceLedger()
        with ledger.hold() as count:
            assert count == 1
            assert ledger.count == 1
        assert ledger.count == 0

    def test_hold_releases_on_error(self) -> None:
        ledger = ReferenceLedger()
        with pytest.raises(ValueError):
            with ledger.hold():
                raise ValueError("inside")
        assert ledger.count == 0

    def test_concurrent_holds_balance(self) -> None:
        ledger = ReferenceLedger()

        def worker() -> None:
            for _ in range(200):
                with ledger.hold():
                    pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert ledger.count == 0


# ---------------------------------------------------------------------------
# CowBox
# ---------------------------------------------------------------------------


class TestCowBoxRead:
    def test_read_returns_instance(self) -> None:
        payload = {"a": 1}
        assert CowBox(payload).read() is payload

    def test_read_is_idempotent(self) -> None:
        box = CowBox({"a": 1})
        twin = box.share()
        views = {id(box.read()) for _ in range(20)}
        assert len(views) == 1
        assert box.share_count == 2
        assert twin.share_count == 2


class TestCowBoxShare:
    def test_share_increments_count(self) -> None:
        box = CowBox([1])
        twin = box.share()
        assert box.share_count == 2
        assert box.is_shared
        assert twin.read() is box.read()
        assert box.shares_instance_with(twin)

    def test_share_does_not_copy(self) -> None:
        copies: list[object] = []
        box = CowBox([1], copier=lambda v: copies.append(v) or list(v))
        box.share()
        box.share()
        assert copies == []
        assert box.share_count == 3


class TestCowBoxMutation:
    def test_sole_owner_mutates_in_place(self) -> None:
        copies: list[object] = []
        payload = ["a"]
        box = CowBox(payload, copier=lambda v: copies.append(v) or list(v))
        assert box.for_mutation() is payload
        assert copies == []
        assert box.share_count == 1

    def test_shared_write_is_isolated(self) -> None:
        box = CowBox({"name": "Pedro Silva", "notes": []})
        twin = box.share()
        box.for_mutation()["notes"].append("allergy")
        assert box.read()["notes"] == ["allergy"]
        assert twin.read()["notes"] == []

    def test_split_leaves_two_sole_owners(self) -> None:
        box = CowBox(["a"])
        twin = box.share()
        box.for_mutation()
        assert box.share_count == 1
        assert twin.share_count == 1
        assert not box.shares_instance_with(twin)

    def test_three_way_split_decrements_by_one(self) -> None:
        box = CowBox(["a"])
        second = box.share()
        third = box.share()
        box.for_mutation()
        assert second.share_count == 2
        assert third.share_count == 2
        assert box.share_count == 1

    def test_custom_copier_used(self) -> None:
        box = CowBox([1, 2], copier=lambda v: list(reversed(v)))
        box.share()
        assert box.for_mutation() == [2, 1]

    def test_concurrent_writers_on_one_handle_split_once(self) -> None:
        copies: list[int] = []
        lock = threading.Lock()

        def copier(value: list[int]) -> list[int]:
            with lock:
                copies.append(1)
            return list(value)

        box = CowBox([0], copier=copier)
        twin = box.share()
        seen: list[int] = []

        def worker() -> None:
            seen.append(id(box.for_mutation()))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(copies) == 1
        assert len(set(seen)) == 1
        assert twin.share_count == 1


class TestCowBoxRelease:
    def test_release_drops_share(self) -> None:
        box = CowBox(["a"])
        twin = box.share()
        twin.release()
        assert box.share_count == 1
        assert twin.released

    def test_release_is_idempotent(self) -> None:
        box = CowBox(["a"])
        twin = box.share()
        twin.release()
        twin.release()
        assert box.share_count == 1

    def test_released_handle_unusable(self) -> None:
        box = CowBox(["a"])
        box.release()
        with pytest.raises(RuntimeError):
            box.read()
