"""Lazy cell for cooperative (asyncio) callers.

AsyncLazyCell mirrors :class:`LazyCell` for code running on an event loop.
The factory, sync or async, runs in its own task.  The initiating caller and
every waiter await that task through :func:`asyncio.shield`, so cancelling
any one caller only removes that caller: the factory keeps running and the
remaining callers still receive its result.

State transitions are guarded by the slot's ``threading`` lock so the cell
can share a slot with the thread-based members; the lock is only ever held
for a transition, never across an ``await``.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable, Generic, TypeVar

from aumos_resource_proxy.errors import InitError, WaitCancelled
from aumos_resource_proxy.lifecycle.lazy_cell import CellState, _Claim

logger = logging.getLogger(__name__)

T = TypeVar("T")

AsyncFactory = Callable[[], Any]


def _consume_outcome(task: asyncio.Task[Any]) -> None:
    # Every caller may have been cancelled; mark the failure as retrieved.
    if not task.cancelled():
        task.exception()


class AsyncLazyCell(Generic[T]):
    """Holds zero-or-one instance built on first access by an asyncio caller.

    Parameters
    ----------
    factory:
        Default factory.  A coroutine function or a plain callable.
    lock:
        Lock shared with the rest of the resource slot.
    name:
        Resource key used in log lines and error messages.
    """

    def __init__(
        self,
        factory: AsyncFactory | None = None,
        lock: threading.RLock | None = None,
        name: str | None = None,
    ) -> None:
        self._factory = factory
        self._lock = lock if lock is not None else threading.RLock()
        self._name = name
        self._state = CellState.EMPTY
        self._value: T | None = None
        self._task: asyncio.Task[Any] | None = None
        self._claims: list[_Claim] = []
        self._generation = 0
        self._waiters = 0

    async def get_or_init(
        self,
        factory: AsyncFactory | None = None,
        timeout: float | None = None,
        on_ready: Callable[[T], Any] | None = None,
        on_abandon: Callable[[T], Any] | None = None,
    ) -> T:
        """Return the instance, materializing it if the cell is empty.

        *on_ready* and *on_abandon* behave as in :meth:`LazyCell.get_or_init`.
        A caller cancelled after its ``on_ready`` ran gets ``on_abandon``.

        Raises
        ------
        InitError
            If the factory of the joined cycle failed.
        WaitCancelled
            If *timeout* elapsed first.  The factory keeps running.
        asyncio.CancelledError
            If this caller was cancelled.  The factory keeps running.
        """
        build = factory or self._factory
        if build is None:
            raise ValueError(f"AsyncLazyCell '{self._name}' has no factory.")

        with self._lock:
            if self._state is CellState.READY:
                if on_ready is not None:
                    on_ready(self._value)  # type: ignore[arg-type]
                return self._value  # type: ignore[return-value]
            if self._state is CellState.EMPTY:
                self._state = CellState.INITIALIZING
                self._generation += 1
                self._claims = []
                self._task = asyncio.ensure_future(self._materialize(build))
                self._task.add_done_callback(_consume_outcome)
                logger.debug(
                    "Cell %s: EMPTY -> INITIALIZING (gen %d)", self._name, self._generation
                )
            task = self._task
            if task is None:
                raise RuntimeError(f"Cell '{self._name}' is initializing without a task.")
            claim = _Claim(on_ready)
            self._claims.append(claim)
            self._waiters += 1

        try:
            if timeout is None:
                return await asyncio.shield(task)
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            # wait_for cancelled our shield only; the factory task lives on.
            self._abandon(claim, task, on_abandon)
            raise WaitCancelled(
                f"Gave up waiting for '{self._name}' after {timeout}s."
            ) from None
        except BaseException:
            self._abandon(claim, task, on_abandon)
            raise
        finally:
            with self._lock:
                self._waiters -= 1

    async def _materialize(self, build: AsyncFactory) -> T:
        try:
            value = build()
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError:
            with self._lock:
                self._reset_after_failure()
            raise
        except Exception as exc:
            logger.warning("Cell %s: factory failed: %r", self._name, exc)
            with self._lock:
                self._state = CellState.FAILED
                self._reset_after_failure()
            raise InitError(self._name, repr(exc)) from exc

        with self._lock:
            self._value = value  # type: ignore[assignment]
            self._state = CellState.READY
            logger.debug("Cell %s: INITIALIZING -> READY", self._name)
            for claim in self._claims:
                claim.fire(value)
            self._claims = []
        return value  # type: ignore[return-value]

    def _abandon(
        self,
        claim: _Claim,
        task: asyncio.Task[Any],
        on_abandon: Callable[[T], Any] | None,
    ) -> None:
        with self._lock:
            fired = claim.withdraw()
        if fired and on_abandon is not None:
            on_abandon(task.result())

    def reset(self) -> bool:
        """Discard a READY instance and return to EMPTY."""
        with self._lock:
            if self._state is not CellState.READY:
                return False
            self._state = CellState.EMPTY
            self._value = None
            self._task = None
            logger.debug("Cell %s: READY -> EMPTY", self._name)
            return True

    def prime(self, value: T) -> None:
        """Install *value* as READY without running a factory."""
        with self._lock:
            if self._state is not CellState.EMPTY:
                raise RuntimeError(
                    f"Cannot prime cell '{self._name}' in state {self._state.value}."
                )
            self._value = value
            self._generation += 1
            self._state = CellState.READY

    def peek(self) -> T | None:
        with self._lock:
            return self._value if self._state is CellState.READY else None

    @property
    def state(self) -> CellState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        return self.state is CellState.READY

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def waiters(self) -> int:
        with self._lock:
            return self._waiters

    def _reset_after_failure(self) -> None:
        self._state = CellState.EMPTY
        self._value = None
        self._task = None
        self._claims = []
