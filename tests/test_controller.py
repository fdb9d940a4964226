import threading

import pytest

from config import PPGConfig
from measurement.controller import MeasurementController, MeasurementState
from measurement.scheduler import VirtualScheduler
from ppg.sources import SignalSource, SyntheticPPGSource
from storage.history import HistoryStore, MemoryKeyValueStore, PersistenceError

# Unsmoothed detection makes the spike train below map 1:1 onto peaks
SPIKE_CONFIG = PPGConfig(smoothing_window=0)


class SpikeSource(SignalSource):
    """100 everywhere, 110 on every whole second → exactly 60 BPM."""

    def __init__(self):
        self.calls = 0
        self.begun = 0
        self.ended = 0

    def begin(self, now_ms):
        self.begun += 1

    def sample(self, now_ms):
        self.calls += 1
        return 110.0 if int(now_ms) % 1000 == 0 else 100.0

    def end(self):
        self.ended += 1


class NoFingerSource(SignalSource):
    def sample(self, now_ms):
        return None


class BrokenKV:
    def get(self, key):
        return None

    def set(self, key, value):
        raise OSError("disk full")


def _make(source=None, config=SPIKE_CONFIG, store=None, on_complete=None):
    sched = VirtualScheduler()
    controller = MeasurementController(
        source or SpikeSource(), sched, config,
        history_store=store or HistoryStore(MemoryKeyValueStore()),
        on_complete=on_complete,
    )
    return controller, sched


def test_initial_status_is_at_rest():
    controller, _ = _make()
    snap = controller.status()
    assert snap.state is MeasurementState.IDLE
    assert snap.live_bpm == 0
    assert snap.progress_percent == 0.0
    assert snap.quality == "poor"
    assert snap.finger_detected is False
    assert snap.final_bpm is None
    assert snap.bpm_category is None


def test_warmup_precedes_sampling():
    source = SpikeSource()
    controller, sched = _make(source)
    assert controller.start()
    assert controller.state is MeasurementState.PREPARING

    sched.advance(1_999)
    assert controller.state is MeasurementState.PREPARING
    assert source.calls == 0

    sched.advance(1)
    assert controller.state is MeasurementState.MEASURING
    assert source.begun == 1

    sched.advance(250)
    assert source.calls == 1
    assert controller.status().finger_detected is True


def test_full_session_produces_final_reading():
    results = []
    source = SpikeSource()
    controller, sched = _make(source, on_complete=results.append)
    controller.start()

    sched.advance(2_000 + 15_000)
    snap = controller.status()
    assert snap.state is MeasurementState.MEASURING
    assert snap.progress_percent == 50.0
    assert snap.live_bpm == 60
    assert snap.quality == "good"

    sched.advance(15_000)
    snap = controller.status()
    assert snap.state is MeasurementState.COMPLETED
    assert snap.final_bpm == 60
    assert snap.progress_percent == 100.0
    assert snap.bpm_category == "normal"
    assert results == [60]
    assert source.ended == 1
    assert len(controller.bpm_history) == 15

    # Nothing keeps running after completion
    calls = source.calls
    sched.advance(10_000)
    assert source.calls == calls
    assert sched.pending == 0


def test_stop_mid_measurement_cancels_everything():
    results = []
    source = SpikeSource()
    controller, sched = _make(source, on_complete=results.append)
    controller.start()
    sched.advance(2_000 + 10_000)
    assert controller.status().live_bpm == 60

    assert controller.stop()
    snap = controller.status()
    assert snap.state is MeasurementState.IDLE
    assert snap.final_bpm is None
    assert snap.live_bpm == 0
    assert snap.progress_percent == 0.0

    calls = source.calls
    sched.advance(60_000)
    assert source.calls == calls
    assert controller.buffer_length == 0
    assert controller.state is MeasurementState.IDLE
    assert results == []
    assert sched.pending == 0


def test_stop_during_warmup():
    source = SpikeSource()
    controller, sched = _make(source)
    controller.start()
    sched.advance(1_000)
    assert controller.stop()
    sched.advance(5_000)
    assert controller.state is MeasurementState.IDLE
    assert source.begun == 0
    assert source.calls == 0


def test_start_while_running_is_rejected():
    controller, sched = _make()
    assert controller.start()
    assert not controller.start()
    sched.advance(3_000)
    assert not controller.start()


def test_stop_and_finish_require_a_running_session():
    controller, sched = _make()
    assert not controller.stop()
    assert not controller.finish()
    controller.start()
    assert not controller.finish()          # still preparing


def test_finish_early_uses_history_so_far():
    results = []
    controller, sched = _make(on_complete=results.append)
    controller.start()
    sched.advance(2_000 + 10_000)
    assert controller.finish()
    assert controller.state is MeasurementState.COMPLETED
    assert controller.final_bpm == 60
    assert results == [60]


def test_no_finger_means_no_reading():
    results = []
    controller, sched = _make(NoFingerSource(), on_complete=results.append)
    controller.start()
    sched.advance(32_000)
    snap = controller.status()
    assert snap.state is MeasurementState.COMPLETED
    assert snap.final_bpm is None
    assert snap.finger_detected is False
    assert results == [None]
    assert controller.save() is None


def test_reset_after_completion_clears_result():
    controller, sched = _make()
    controller.start()
    sched.advance(32_000)
    assert controller.final_bpm == 60

    controller.reset()
    snap = controller.status()
    assert snap.state is MeasurementState.IDLE
    assert snap.final_bpm is None
    assert snap.quality == "poor"
    assert controller.bpm_history == []
    assert controller.buffer_length == 0


def test_restart_after_completion_starts_fresh():
    controller, sched = _make()
    controller.start()
    sched.advance(32_000)
    assert controller.start()
    snap = controller.status()
    assert snap.state is MeasurementState.PREPARING
    assert snap.final_bpm is None
    assert controller.bpm_history == []


def test_duration_override():
    controller, sched = _make()
    controller.start(duration_ms=10_000)
    sched.advance(2_000 + 5_000)
    assert controller.status().progress_percent == 50.0
    sched.advance(5_000)
    assert controller.state is MeasurementState.COMPLETED


def test_save_persists_completed_reading():
    store = HistoryStore(MemoryKeyValueStore())
    controller, sched = _make(store=store)
    controller.start()
    sched.advance(32_000)

    entry = controller.save(timestamp_ms=1_700_000_000_000)
    assert entry.bpm == 60
    assert entry.quality == "good"
    assert entry.id == "1700000000000"
    assert store.load() == [entry]


def test_save_failure_leaves_session_intact():
    controller, sched = _make(store=HistoryStore(BrokenKV()))
    controller.start()
    sched.advance(32_000)

    with pytest.raises(PersistenceError):
        controller.save()
    snap = controller.status()
    assert snap.state is MeasurementState.COMPLETED
    assert snap.final_bpm == 60


def test_synthetic_session_is_reproducible():
    def run(seed):
        controller, sched = _make(SyntheticPPGSource(seed=seed), config=PPGConfig())
        controller.start()
        sched.advance(32_000)
        return controller.status(), controller.bpm_history

    first, history_a = run(42)
    second, history_b = run(42)
    assert first == second
    assert history_a == history_b
    assert all(40 <= bpm <= 200 for bpm in history_a)
    assert first.state is MeasurementState.COMPLETED


class RecordingScheduler(VirtualScheduler):
    """Keeps every handle so a test can fire a callback after cancellation."""

    def __init__(self):
        super().__init__()
        self.handles = []

    def call_later(self, delay_ms, callback):
        handle = super().call_later(delay_ms, callback)
        self.handles.append(handle)
        return handle

    def call_every(self, period_ms, callback):
        handle = super().call_every(period_ms, callback)
        self.handles.append(handle)
        return handle


def test_late_ticks_after_stop_change_nothing():
    results = []
    source = SpikeSource()
    sched = RecordingScheduler()
    controller = MeasurementController(
        source, sched, SPIKE_CONFIG,
        history_store=HistoryStore(MemoryKeyValueStore()), on_complete=results.append,
    )
    controller.start()
    sched.advance(2_000 + 10_000)
    # warm-up, then progress / sampling / deadline
    _, progress, sampling, deadline = sched.handles

    assert controller.stop()
    calls = source.calls

    # A real-time worker may already have dequeued these when stop() ran
    sampling.callback()
    progress.callback()
    deadline.callback()

    snap = controller.status()
    assert snap.state is MeasurementState.IDLE
    assert snap.progress_percent == 0.0
    assert source.calls == calls
    assert controller.buffer_length == 0
    assert controller.bpm_history == []
    assert results == []


def _lock_free_listener(owner, seen):
    """on_complete that checks another thread can read the status meanwhile."""
    def on_complete(final):
        reader = threading.Thread(target=lambda: seen.append(owner[0].status().state))
        reader.start()
        reader.join(timeout=2.0)
        seen.append(final)
    return on_complete


def test_deadline_notifies_without_holding_the_lock():
    seen, owner = [], []
    controller, sched = _make(on_complete=_lock_free_listener(owner, seen))
    owner.append(controller)
    controller.start()
    sched.advance(32_000)
    assert seen == [MeasurementState.COMPLETED, 60]


def test_finish_notifies_without_holding_the_lock():
    seen, owner = [], []
    controller, sched = _make(on_complete=_lock_free_listener(owner, seen))
    owner.append(controller)
    controller.start()
    sched.advance(12_000)
    assert controller.finish()
    assert seen == [MeasurementState.COMPLETED, 60]
