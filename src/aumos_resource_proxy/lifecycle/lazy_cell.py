"""Thread-safe lazy cell holding zero or one materialized instance.

A LazyCell moves through ``EMPTY -> INITIALIZING -> READY`` and back to
``EMPTY`` on :meth:`LazyCell.reset` or on factory failure.  Exactly one
caller runs the factory per materialization cycle; every other caller that
arrives while the cycle is in flight waits on a condition variable bound to
the resource lock and receives the same outcome.

The factory always runs *outside* the lock, so a slow factory never blocks
callers of other cell methods (``state``, ``reset``) for longer than a state
transition.

Example
-------
>>> cell = LazyCell(factory=lambda: {"payload": 1}, name="demo")
>>> cell.state
<CellState.EMPTY: 'empty'>
>>> cell.get_or_init()["payload"]
1
>>> cell.state
<CellState.READY: 'ready'>
"""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Generic, TypeVar

from aumos_resource_proxy.errors import InitError, WaitCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CellState(str, Enum):
    """Lifecycle states of a lazy cell."""

    EMPTY = "empty"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class _Claim:
    """One caller's interest in a cycle's result.

    ``on_ready`` runs under the cell lock in the same critical section that
    publishes the value, so the caller's hold on the instance is taken before
    any other caller can release theirs.
    """

    __slots__ = ("on_ready", "fired", "withdrawn")

    def __init__(self, on_ready: Callable[[Any], Any] | None) -> None:
        self.on_ready = on_ready
        self.fired = False
        self.withdrawn = False

    def fire(self, value: Any) -> None:
        if self.withdrawn:
            return
        self.fired = True
        if self.on_ready is not None:
            self.on_ready(value)

    def withdraw(self) -> bool:
        """Stop the claim from firing; return True if it already fired."""
        self.withdrawn = True
        return self.fired


class _Cycle(Generic[T]):
    """Outcome of one materialization attempt, shared by initiator and waiters."""

    __slots__ = ("done", "value", "error", "claims")

    def __init__(self) -> None:
        self.done = False
        self.value: T | None = None
        self.error: BaseException | None = None
        self.claims: list[_Claim] = []

    def claim(self, on_ready: Callable[[Any], Any] | None) -> _Claim:
        claim = _Claim(on_ready)
        self.claims.append(claim)
        return claim


class LazyCell(Generic[T]):
    """Holds zero-or-one instance built by a factory on first access.

    Parameters
    ----------
    factory:
        Default zero-argument factory.  May be overridden per call.
    lock:
        Lock shared with the other members of the resource slot.  A private
        ``threading.RLock`` is created when omitted.
    name:
        Resource key used in log lines and error messages.
    """

    def __init__(
        self,
        factory: Callable[[], T] | None = None,
        lock: threading.RLock | None = None,
        name: str | None = None,
    ) -> None:
        self._factory = factory
        self._lock = lock if lock is not None else threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._name = name
        self._state = CellState.EMPTY
        self._value: T | None = None
        self._cycle: _Cycle[T] | None = None
        self._generation = 0
        self._waiters = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_or_init(
        self,
        factory: Callable[[], T] | None = None,
        timeout: float | None = None,
        on_ready: Callable[[T], Any] | None = None,
        on_abandon: Callable[[T], Any] | None = None,
    ) -> T:
        """Return the instance, materializing it if the cell is empty.

        Parameters
        ----------
        factory:
            Factory to run if this call starts a new cycle.  Falls back to the
            factory given at construction.
        timeout:
            Maximum seconds to wait for another caller's in-flight cycle.
            ``None`` waits indefinitely.  Does not bound the factory itself
            when this call is the initiator.
        on_ready:
            Called with the instance under the cell lock, in the same critical
            section that hands the instance to this caller.  A ``reset`` can
            therefore never slip in between the two.
        on_abandon:
            Called with the instance if this caller gives up after
            ``on_ready`` already ran for it.

        Raises
        ------
        InitError
            If the factory of the cycle this call joined (or started) failed.
        WaitCancelled
            If *timeout* elapsed while waiting.  The in-flight cycle and the
            other waiters are unaffected.
        ValueError
            If no factory is available.
        """
        build = factory or self._factory
        if build is None:
            raise ValueError(f"LazyCell '{self._name}' has no factory.")

        with self._cond:
            if self._state is CellState.READY:
                if on_ready is not None:
                    on_ready(self._value)  # type: ignore[arg-type]
                return self._value  # type: ignore[return-value]
            if self._state is CellState.INITIALIZING:
                return self._wait_for_cycle(timeout, on_ready, on_abandon)

            cycle: _Cycle[T] = _Cycle()
            cycle.claim(on_ready)
            self._cycle = cycle
            self._state = CellState.INITIALIZING
            self._generation += 1
            logger.debug("Cell %s: EMPTY -> INITIALIZING (gen %d)", self._name, self._generation)

        try:
            value = build()
        except BaseException as exc:
            self._finish_failed(cycle, exc)
            if isinstance(exc, Exception):
                raise InitError(self._name, repr(exc)) from exc
            raise

        with self._cond:
            cycle.value = value
            cycle.done = True
            self._value = value
            self._state = CellState.READY
            logger.debug("Cell %s: INITIALIZING -> READY", self._name)
            for claim in cycle.claims:
                claim.fire(value)
            cycle.claims.clear()
            self._cond.notify_all()
        return value

    def reset(self) -> bool:
        """Discard a READY instance and return to EMPTY.

        Returns ``True`` if an instance was discarded.  A reset during an
        in-flight cycle is ignored; that cycle belongs to its initiator.
        """
        with self._cond:
            if self._state is not CellState.READY:
                return False
            self._state = CellState.EMPTY
            self._value = None
            self._cycle = None
            logger.debug("Cell %s: READY -> EMPTY", self._name)
            return True

    def prime(self, value: T) -> None:
        """Install *value* as READY without running a factory.

        Raises
        ------
        RuntimeError
            If the cell is not EMPTY.
        """
        with self._cond:
            if self._state is not CellState.EMPTY:
                raise RuntimeError(
                    f"Cannot prime cell '{self._name}' in state {self._state.value}."
                )
            cycle: _Cycle[T] = _Cycle()
            cycle.value = value
            cycle.done = True
            self._cycle = cycle
            self._value = value
            self._generation += 1
            self._state = CellState.READY

    def peek(self) -> T | None:
        """Return the READY instance without materializing, else ``None``."""
        with self._lock:
            return self._value if self._state is CellState.READY else None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> CellState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state is CellState.READY

    @property
    def generation(self) -> int:
        """Number of materialization cycles started so far."""
        with self._lock:
            return self._generation

    @property
    def waiters(self) -> int:
        """Number of callers currently blocked on an in-flight cycle."""
        with self._lock:
            return self._waiters

    @property
    def name(self) -> str | None:
        return self._name

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _wait_for_cycle(
        self,
        timeout: float | None,
        on_ready: Callable[[T], Any] | None,
        on_abandon: Callable[[T], Any] | None,
    ) -> T:
        """Join the in-flight cycle.  Caller holds the cell lock."""
        cycle = self._cycle
        if cycle is None:
            raise RuntimeError(f"Cell '{self._name}' is initializing without a cycle.")
        claim = cycle.claim(on_ready)
        self._waiters += 1
        finished = False
        try:
            finished = self._cond.wait_for(lambda: cycle.done, timeout)
        finally:
            self._waiters -= 1
            if not finished and claim.withdraw() and on_abandon is not None:
                on_abandon(cycle.value)  # type: ignore[arg-type]
        if not finished:
            logger.debug("Waiter gave up on cell %s after %ss", self._name, timeout)
            raise WaitCancelled(f"Gave up waiting for '{self._name}' after {timeout}s.")
        if cycle.error is not None:
            raise InitError(self._name, repr(cycle.error)) from cycle.error
        return cycle.value  # type: ignore[return-value]

    def _finish_failed(self, cycle: _Cycle[T], exc: BaseException) -> None:
        """Record a failed cycle, wake its waiters, and return to EMPTY."""
        with self._cond:
            self._state = CellState.FAILED
            cycle.error = exc
            cycle.done = True
            logger.warning("Cell %s: factory failed: %r", self._name, exc)
            self._cond.notify_all()
            self._state = CellState.EMPTY
            self._cycle = None
            self._value = None
