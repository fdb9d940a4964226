"""
measurement/controller.py — Heart-rate measurement session
===========================================================
Owns the signal buffer, the BPM aggregator and the signal source, and
drives one measurement at a time through

    idle ──start──▶ preparing ──(warm-up)──▶ measuring ──(deadline / finish)──▶ completed
      ▲                 │                        │                                  │
      └────────stop─────┴────────────stop────────┘                                  │
      └──────────────────────────────reset──────────────────────────────────────────┘

While measuring, three scheduler tasks are live:

    progress ticker   every 100 ms   progress = min(elapsed / duration, 1) · 100
    sampling ticker   every 250 ms   sample → buffer → peaks → BPM → aggregator
    deadline          once at 30 s   finalize

Thread safety
-------------
All state is guarded by `_lock` (re-entrant).  Tear-down (`stop`, `reset`,
finalize) first cancels every task and bumps `_generation` while holding
the lock; each task checks the generation it was scheduled under before
touching anything, so a tick that was already dequeued by a real-time
scheduler when the session ended becomes a no-op.  `on_complete` is
always called after the lock is released, on whichever thread completed
the session.

Numerical edge cases (too few samples, too few peaks, implausible BPM)
simply skip the cycle.  Only `save()` can fail outward, with
`PersistenceError`.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable

from config import DEFAULT_CONFIG, PPGConfig
from features.hr import bpm_category, estimate_bpm
from measurement.aggregator import BPMAggregator, Quality, quality_message
from measurement.scheduler import Scheduler, TaskHandle
from ppg.buffer import Sample, SignalBuffer
from ppg.peaks import detect_peaks
from ppg.sources import SignalSource
from storage.history import HeartRateEntry, HistoryStore, make_entry
from utils.logger import get_logger

logger = get_logger("measurement.controller")


class MeasurementState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    MEASURING = "measuring"
    COMPLETED = "completed"


@dataclass(frozen=True)
class MeasurementStatus:
    """Observable snapshot of the session."""
    state: MeasurementState
    live_bpm: int
    progress_percent: float
    finger_detected: bool
    quality: Quality
    final_bpm: int | None

    @property
    def bpm_category(self) -> str | None:
        bpm = self.final_bpm if self.final_bpm is not None else self.live_bpm
        return bpm_category(bpm) if bpm > 0 else None

    @property
    def quality_message(self) -> str:
        return quality_message(self.quality)


class MeasurementController:
    """
    Drives a single PPG measurement session at a time.

    Parameters
    ----------
    source        : SignalSource      Where intensity samples come from.
    scheduler     : Scheduler         Virtual or real-time timers.
    config        : PPGConfig         Tunables (immutable).
    history_store : HistoryStore      Used by `save()`; optional.
    on_complete   : callable(int|None) Called with the final BPM (or None)
                                       when a session reaches `completed`.
    """

    def __init__(
        self,
        source: SignalSource,
        scheduler: Scheduler,
        config: PPGConfig = DEFAULT_CONFIG,
        history_store: HistoryStore | None = None,
        on_complete: Callable[[int | None], None] | None = None,
    ):
        self._source = source
        self._scheduler = scheduler
        self._config = config
        self._history_store = history_store
        self._on_complete = on_complete

        self._lock = threading.RLock()
        self._buffer = SignalBuffer(config.retention_window_ms)
        self._aggregator = BPMAggregator(config)
        self._tasks: list[TaskHandle] = []
        self._generation = 0
        self._capturing = False

        self._state = MeasurementState.IDLE
        self._duration_ms = config.measurement_duration_ms
        self._start_ms = 0.0
        self._progress = 0.0
        self._live_bpm = 0
        self._quality: Quality = "poor"
        self._finger_detected = False
        self._final_bpm: int | None = None

    # ── Public API ───────────────────────────────────────────────────────────

    @property
    def state(self) -> MeasurementState:
        with self._lock:
            return self._state

    @property
    def final_bpm(self) -> int | None:
        with self._lock:
            return self._final_bpm

    @property
    def bpm_history(self) -> list[int]:
        with self._lock:
            return self._aggregator.history

    @property
    def history_store(self) -> HistoryStore | None:
        return self._history_store

    @property
    def buffer_length(self) -> int:
        with self._lock:
            return len(self._buffer)

    def status(self) -> MeasurementStatus:
        with self._lock:
            return MeasurementStatus(
                state=self._state,
                live_bpm=self._live_bpm,
                progress_percent=round(self._progress, 1),
                finger_detected=self._finger_detected,
                quality=self._quality,
                final_bpm=self._final_bpm,
            )

    def start(self, duration_ms: int | None = None) -> bool:
        """
        Begin a new session (warm-up first).

        Returns False if a session is already preparing or measuring.
        """
        with self._lock:
            if self._state in (MeasurementState.PREPARING, MeasurementState.MEASURING):
                logger.warning("Measurement already in progress (%s).", self._state.value)
                return False

            self._cancel_tasks()
            self._clear_session()
            self._duration_ms = duration_ms or self._config.measurement_duration_ms
            self._state = MeasurementState.PREPARING

            self._schedule_once(self._config.warmup_ms, self._begin_measuring)
            logger.info(
                "Measurement started — warm-up %d ms, duration %d ms.",
                self._config.warmup_ms, self._duration_ms,
            )
            return True

    def stop(self) -> bool:
        """Abort a preparing/measuring session; no reading is produced."""
        with self._lock:
            if self._state not in (MeasurementState.PREPARING, MeasurementState.MEASURING):
                logger.warning("stop() ignored — nothing running (%s).", self._state.value)
                return False
            was_measuring = self._state is MeasurementState.MEASURING
            self._cancel_tasks()
            if was_measuring:
                self._source.end()
            self._clear_session()
            self._state = MeasurementState.IDLE
            logger.info("Measurement stopped.")
            return True

    def finish(self) -> bool:
        """Finalize a measuring session before its deadline."""
        with self._lock:
            if self._state is not MeasurementState.MEASURING:
                logger.warning("finish() ignored — not measuring (%s).", self._state.value)
                return False
            final = self._finalize()
        self._notify_complete(final)
        return True

    def reset(self) -> None:
        """Return to idle, discarding any result."""
        with self._lock:
            was_measuring = self._state is MeasurementState.MEASURING
            self._cancel_tasks()
            if was_measuring:
                self._source.end()
            self._clear_session()
            self._state = MeasurementState.IDLE
            logger.info("Measurement reset.")

    def save(self, timestamp_ms: int | None = None) -> HeartRateEntry | None:
        """
        Persist the completed reading.

        Returns the saved entry, or None when there is no completed reading.
        Raises `storage.history.PersistenceError` if the write fails; the
        session itself is left untouched either way.
        """
        with self._lock:
            if self._state is not MeasurementState.COMPLETED or not self._final_bpm:
                logger.warning("save() ignored — no completed reading.")
                return None
            entry = make_entry(self._final_bpm, self._quality, timestamp_ms)
        if self._history_store is None:
            raise RuntimeError("No history store configured.")
        self._history_store.save(entry)
        return entry

    # ── Private: scheduled steps ─────────────────────────────────────────────

    def _begin_measuring(self) -> None:
        cfg = self._config
        self._state = MeasurementState.MEASURING
        self._start_ms = self._scheduler.now_ms()
        self._source.begin(self._start_ms)

        self._schedule_every(cfg.progress_interval_ms, self._tick_progress)
        self._schedule_every(cfg.capture_interval_ms, self._tick_sample)
        self._schedule_once(self._duration_ms, self._on_deadline)
        logger.info("Warm-up done — measuring.")

    def _tick_progress(self) -> None:
        elapsed = self._scheduler.now_ms() - self._start_ms
        self._progress = min(elapsed / self._duration_ms, 1.0) * 100.0

    def _tick_sample(self) -> None:
        if self._capturing:
            return
        self._capturing = True
        try:
            now = self._scheduler.now_ms()
            value = self._source.sample(now)
            if value is None:
                self._finger_detected = False
                return
            self._finger_detected = True
            self._buffer.append(Sample(now, value))

            if len(self._buffer) > self._config.min_samples_for_estimate:
                self._estimate()
        finally:
            self._capturing = False

    def _estimate(self) -> None:
        cfg = self._config
        peaks = detect_peaks(
            self._buffer.samples,
            smoothing_window=cfg.smoothing_window,
            threshold_factor=cfg.threshold_std_factor,
            min_distance_ms=cfg.peak_min_distance_ms,
            min_samples=cfg.min_samples_for_peaks,
        )
        bpm = estimate_bpm(
            peaks,
            min_peaks=cfg.min_peaks_for_bpm,
            min_interval_ms=cfg.peak_min_distance_ms,
            max_interval_ms=cfg.peak_max_distance_ms,
            fence_k=cfg.tukey_fence_k,
            min_bpm=cfg.min_bpm,
            max_bpm=cfg.max_bpm,
        )
        if bpm is None:
            return
        update = self._aggregator.add(bpm)
        self._live_bpm = update.live_bpm
        self._quality = update.quality
        logger.debug(
            "Estimate %d BPM → live %d (variance=%.1f, %s)",
            bpm, update.live_bpm, update.variance, update.quality,
        )

    def _on_deadline(self) -> Callable[[], None]:
        final = self._finalize()
        return partial(self._notify_complete, final)

    def _finalize(self) -> int | None:
        """measuring → completed.  Caller holds the lock."""
        self._cancel_tasks()
        self._source.end()

        final = self._aggregator.final_bpm(fallback=self._live_bpm)
        self._final_bpm = final
        if final is not None:
            self._live_bpm = final
        self._progress = 100.0
        self._state = MeasurementState.COMPLETED

        if final is None:
            logger.warning(
                "Measurement complete without a reading (%d estimates).",
                len(self._aggregator),
            )
        else:
            logger.info(
                "Measurement complete — %d BPM from %d estimates (%s).",
                final, len(self._aggregator), self._quality,
            )
        return final

    def _notify_complete(self, final: int | None) -> None:
        if self._on_complete is not None:
            self._on_complete(final)

    # ── Private: task bookkeeping ────────────────────────────────────────────

    def _guard(self, generation: int, step: Callable[[], Callable[[], None] | None]) -> Callable[[], None]:
        """
        Wrap `step` so it only runs while its session is still current.

        `step` runs under the lock; a callable it returns is invoked after
        the lock is released (listener notification).
        """
        def run() -> None:
            with self._lock:
                if generation != self._generation:
                    return
                after = step()
            if after is not None:
                after()
        return run

    def _schedule_once(self, delay_ms: float, step: Callable[[], Callable[[], None] | None]) -> None:
        self._tasks.append(self._scheduler.call_later(delay_ms, self._guard(self._generation, step)))

    def _schedule_every(self, period_ms: float, step: Callable[[], None]) -> None:
        self._tasks.append(self._scheduler.call_every(period_ms, self._guard(self._generation, step)))

    def _cancel_tasks(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        self._generation += 1

    def _clear_session(self) -> None:
        self._buffer.clear()
        self._aggregator.clear()
        self._progress = 0.0
        self._live_bpm = 0
        self._quality = "poor"
        self._finger_detected = False
        self._final_bpm = None
        self._capturing = False
