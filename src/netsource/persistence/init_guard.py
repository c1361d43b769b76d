"""
netsource — single-flight initialization gate.

File: src/netsource/persistence/init_guard.py
Last updated: 2026-10-18

Purpose
- Run the initialization pipeline at most once per process, sharing the outcome
  with every concurrent and later caller until explicitly reset.

Functional requirements
- The UNINITIALIZED -> INITIALIZING transition is a locked compare-and-swap.
- Callers that observe INITIALIZING wait on the same future as the runner.
- A failure is sticky: every later call re-raises it until ``reset_state``.

Non-functional requirements
- Works under both thread parallelism and asyncio; cancelling an async waiter
  never cancels the shared run.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from enum import StrEnum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InitializationState(StrEnum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class InitGuard(Generic[T]):
    """Admits one pipeline run and fans its result out to all callers."""

    def __init__(self, pipeline: Callable[[], T]) -> None:
        self._pipeline = pipeline
        self._lock = threading.Lock()
        self._state = InitializationState.UNINITIALIZED
        self._future: Future[T] | None = None
        self._runner_thread: int | None = None
        self._result: T | None = None
        self._error: BaseException | None = None

    @property
    def state(self) -> InitializationState:
        with self._lock:
            return self._state

    @property
    def result(self) -> T | None:
        with self._lock:
            return self._result

    @property
    def error(self) -> BaseException | None:
        with self._lock:
            return self._error

    def ensure_initialized(self) -> T:
        """Run the pipeline if nobody has, otherwise wait for the shared outcome."""

        future, owner = self._claim()
        if owner:
            self._run(future)
        return future.result()

    async def ensure_initialized_async(self) -> T:
        """Coroutine form: the winner runs the pipeline in a worker thread."""

        future, owner = self._claim()
        if owner:
            await asyncio.to_thread(self._run, future)
            return future.result()
        return await asyncio.wrap_future(future)

    def reset_state(self) -> None:
        """Forget the cached outcome; storage is untouched."""

        with self._lock:
            if self._state is InitializationState.INITIALIZING:
                raise RuntimeError("cannot reset initialization state while a run is in flight")
            self._state = InitializationState.UNINITIALIZED
            self._future = None
            self._result = None
            self._error = None
        logger.debug("initialization state reset")

    def _claim(self) -> tuple[Future[T], bool]:
        with self._lock:
            if self._future is not None:
                if (
                    self._state is InitializationState.INITIALIZING
                    and self._runner_thread == threading.get_ident()
                ):
                    raise RuntimeError("initialization pipeline re-entered ensure_initialized")
                return self._future, False
            future: Future[T] = Future()
            # RUNNING futures cannot be cancelled through asyncio.wrap_future.
            future.set_running_or_notify_cancel()
            self._future = future
            self._state = InitializationState.INITIALIZING
            return future, True

    def _run(self, future: Future[T]) -> None:
        with self._lock:
            self._runner_thread = threading.get_ident()
        try:
            result = self._pipeline()
        except BaseException as exc:
            with self._lock:
                self._state = InitializationState.FAILED
                self._error = exc
                self._runner_thread = None
            logger.error("initialization failed: %s", exc)
            future.set_exception(exc)
            return
        with self._lock:
            self._state = InitializationState.READY
            self._result = result
            self._runner_thread = None
        future.set_result(result)


__all__ = ["InitGuard", "InitializationState"]
