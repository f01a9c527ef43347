"""Dispatch backend calls off the owner thread, apply results on it.

All state mutation happens on a single owner thread. Backend calls run on
worker threads; their results (or errors) are queued and only handed to
the success/error callbacks when the owner calls drain(). No callback ever
runs on a worker thread.

InlineDispatcher runs the call and its callback immediately, which is
what tests and one-shot CLI commands want.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

logger = logging.getLogger(__name__)


def _log_error(label: str):
    def on_error(exc: BaseException) -> None:
        logger.warning("%s failed: %s", label, exc)
    return on_error


class InlineDispatcher:
    """Runs each call synchronously on the caller's thread."""

    def submit(
        self,
        call: Callable[[], object],
        on_success: Callable[[object], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        label: str = "backend call",
    ) -> None:
        try:
            result = call()
        except Exception as e:
            (on_error or _log_error(label))(e)
            return
        if on_success is not None:
            on_success(result)

    def drain(self) -> int:
        return 0

    def discard_pending(self) -> None:
        return None

    def wait(self, timeout: float | None = None) -> None:
        return None

    def shutdown(self) -> None:
        return None


class ThreadedDispatcher:
    """Runs calls on a thread pool; callbacks run on the owner's drain().

    Args:
        max_workers: Worker thread count. Calls may complete out of
            issue order.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="spendvolt-net",
        )
        self._results: queue.Queue = queue.Queue()
        self._in_flight = 0
        # Results from an older generation are dropped, not applied
        self._generation = 0
        self._lock = threading.Lock()

    def submit(
        self,
        call: Callable[[], object],
        on_success: Callable[[object], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        label: str = "backend call",
    ) -> None:
        with self._lock:
            self._in_flight += 1
            generation = self._generation
        on_error = on_error or _log_error(label)

        def run() -> None:
            try:
                result = call()
            except Exception as e:
                self._results.put((generation, label, on_error, e))
            else:
                self._results.put((generation, label, on_success, result))

        self._executor.submit(run)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def discard_pending(self) -> None:
        """Drop the results of every call issued so far.

        The calls themselves still run to completion; only their callbacks
        are skipped. Used on logout so replies for the old session never
        reach the state store.
        """
        with self._lock:
            self._generation += 1
            pending = self._in_flight
        if pending:
            logger.info("Discarding %d in-flight backend result(s)", pending)

    def _apply(self, item) -> None:
        generation, label, callback, value = item
        with self._lock:
            self._in_flight -= 1
            stale = generation != self._generation
        if stale:
            logger.debug("Dropping stale result of %s", label)
            return
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Result callback raised")

    def drain(self) -> int:
        """Apply every queued result on the calling (owner) thread."""
        applied = 0
        while True:
            try:
                item = self._results.get_nowait()
            except queue.Empty:
                return applied
            self._apply(item)
            applied += 1

    def wait(self, timeout: float | None = None) -> None:
        """Drain until nothing is in flight, including calls issued by callbacks.

        Raises:
            TimeoutError: If results are still outstanding after ``timeout``.
        """
        while self.in_flight:
            try:
                item = self._results.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError(
                    f"{self.in_flight} backend call(s) still in flight"
                ) from None
            self._apply(item)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
        self.drain()
