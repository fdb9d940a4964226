"""
measurement/scheduler.py — Cancellable timers for the measurement session
==========================================================================
The controller never touches `threading.Timer` or `time.sleep` directly.
Everything time-driven goes through a `Scheduler`:

    now_ms()                  current time in milliseconds
    call_later(delay, fn)     one-shot task          → TaskHandle
    call_every(period, fn)    periodic task          → TaskHandle
                              (first run after one period)

Two implementations are provided:

* `VirtualScheduler`   — a virtual clock advanced explicitly with
  `advance(ms)`.  Fully deterministic; used by the tests and by the
  CLI's `--fast` mode.
* `ThreadingScheduler` — real time.  A single daemon worker thread pops
  due tasks off a heap and runs them one at a time, so pipeline work is
  never executed concurrently with itself.

Both fire tasks in (due time, creation order) order.
"""

import heapq
import itertools
import threading
import time
from typing import Callable

from utils.logger import get_logger

logger = get_logger("measurement.scheduler")


class TaskHandle:
    """Handle for a scheduled task.  `cancel()` is idempotent."""

    def __init__(self, callback: Callable[[], None], period_ms: float | None):
        self.callback = callback
        self.period_ms = period_ms
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class Scheduler:
    """Interface shared by the virtual and real-time schedulers."""

    def now_ms(self) -> float:
        raise NotImplementedError

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        raise NotImplementedError

    def call_every(self, period_ms: float, callback: Callable[[], None]) -> TaskHandle:
        raise NotImplementedError


class _TaskQueue:
    """Min-heap of (due, seq, handle); seq keeps creation order on ties."""

    def __init__(self):
        self._heap: list[tuple[float, int, TaskHandle]] = []
        self._seq = itertools.count()

    def push(self, due: float, handle: TaskHandle) -> None:
        heapq.heappush(self._heap, (due, next(self._seq), handle))

    def peek_due(self) -> float | None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def pop(self) -> tuple[float, TaskHandle]:
        due, _, handle = heapq.heappop(self._heap)
        return due, handle

    def __len__(self) -> int:
        return sum(1 for _, _, h in self._heap if not h.cancelled)


class VirtualScheduler(Scheduler):
    """Deterministic scheduler driven by `advance()`."""

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._queue = _TaskQueue()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        handle = TaskHandle(callback, period_ms=None)
        self._queue.push(self._now + delay_ms, handle)
        return handle

    def call_every(self, period_ms: float, callback: Callable[[], None]) -> TaskHandle:
        if period_ms <= 0:
            raise ValueError("period_ms must be positive.")
        handle = TaskHandle(callback, period_ms=period_ms)
        self._queue.push(self._now + period_ms, handle)
        return handle

    def advance(self, ms: float) -> None:
        """Move the clock forward by `ms`, running every task that falls due."""
        target = self._now + ms
        while True:
            due = self._queue.peek_due()
            if due is None or due > target:
                break
            due, handle = self._queue.pop()
            self._now = due
            if handle.period_ms is not None:
                # Re-arm before running so the callback may cancel itself
                self._queue.push(due + handle.period_ms, handle)
            handle.callback()
        self._now = target

    def run_until_idle(self, limit_ms: float = 3_600_000) -> None:
        """Advance until no one-shot or periodic task is pending (or `limit_ms`)."""
        start = self._now
        while len(self._queue) and self._now - start < limit_ms:
            due = self._queue.peek_due()
            if due is None:
                break
            self.advance(due - self._now)

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) tasks."""
        return len(self._queue)


class ThreadingScheduler(Scheduler):
    """
    Real-time scheduler backed by one daemon worker thread.

    Callbacks run on the worker thread, outside the scheduler's internal
    lock, so they may freely schedule or cancel other tasks.  An exception
    raised by a callback is logged and does not kill the worker.
    """

    def __init__(self):
        self._queue = _TaskQueue()
        self._cond = threading.Condition()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="ppg-scheduler", daemon=True)
        self._thread.start()

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TaskHandle:
        handle = TaskHandle(callback, period_ms=None)
        self._push(self.now_ms() + delay_ms, handle)
        return handle

    def call_every(self, period_ms: float, callback: Callable[[], None]) -> TaskHandle:
        if period_ms <= 0:
            raise ValueError("period_ms must be positive.")
        handle = TaskHandle(callback, period_ms=period_ms)
        self._push(self.now_ms() + period_ms, handle)
        return handle

    def close(self) -> None:
        """Stop the worker thread; pending tasks are dropped."""
        self._stop_event.set()
        with self._cond:
            self._cond.notify_all()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        logger.debug("Scheduler worker stopped.")

    # ── Private ──────────────────────────────────────────────────────────────

    def _push(self, due: float, handle: TaskHandle) -> None:
        with self._cond:
            self._queue.push(due, handle)
            self._cond.notify_all()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            with self._cond:
                due = self._queue.peek_due()
                now = self.now_ms()
                if due is None:
                    self._cond.wait(timeout=0.5)
                    continue
                if due > now:
                    self._cond.wait(timeout=(due - now) / 1000.0)
                    continue
                due, handle = self._queue.pop()
                if handle.period_ms is not None:
                    # Fixed-rate re-arm; skip ahead if we fell behind
                    next_due = due + handle.period_ms
                    if next_due <= now:
                        next_due = now + handle.period_ms
                    self._queue.push(next_due, handle)

            if handle.cancelled:
                continue
            try:
                handle.callback()
            except Exception:
                logger.exception("Scheduled task raised:")
