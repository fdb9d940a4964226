"""
ppg/sources.py — Signal sources feeding the measurement session
================================================================
A signal source produces one light-intensity scalar on demand:

    begin(now_ms)       arm the source for a new session
    sample(now_ms)      → float, or None when no finger / no frame
    end()               release anything acquired in begin()

`SyntheticPPGSource` simulates a fingertip PPG trace so the whole
pipeline can be exercised without a camera.  The waveform is a sum of

* a systolic half-sine raised to 1.8 (sharp upstroke, rounded top);
* a dicrotic-notch harmonic at twice the heart frequency (×0.25);
* slow respiratory modulation (±0.03) and motion wobble (±0.015);
* uniform sensor noise (±0.01);

scaled by 25 on top of a 195 baseline (a red channel near saturation).
The heart rate drifts ±3 BPM around a base rate that is redrawn from
[60, 95] on every `begin()`.  The random generator is injectable so a
seeded source reproduces the exact same trace.
"""

import math

import numpy as np

from config import SYNTHETIC_BASE_BPM_MAX, SYNTHETIC_BASE_BPM_MIN
from utils.logger import get_logger

logger = get_logger("ppg.sources")

_BASELINE = 195.0
_AMPLITUDE = 25.0


class SignalSource:
    """Interface for anything that can be sampled by the controller."""

    def begin(self, now_ms: float) -> None:
        pass

    def sample(self, now_ms: float) -> float | None:
        raise NotImplementedError

    def end(self) -> None:
        pass


class SyntheticPPGSource(SignalSource):
    """
    Deterministic-under-seed synthetic fingertip PPG generator.

    Parameters
    ----------
    rng  : numpy Generator used for the base rate and sensor noise.
    seed : convenience alternative to `rng`.
    """

    def __init__(self, rng: np.random.Generator | None = None, seed: int | None = None):
        self._rng = rng if rng is not None else np.random.default_rng(seed)
        self._origin_ms = 0.0
        self.base_bpm = 72

    def begin(self, now_ms: float) -> None:
        self._origin_ms = now_ms
        self.base_bpm = int(self._rng.integers(SYNTHETIC_BASE_BPM_MIN, SYNTHETIC_BASE_BPM_MAX + 1))
        logger.info("Synthetic source armed at base %d BPM.", self.base_bpm)

    def sample(self, now_ms: float) -> float:
        return self.value_at(now_ms - self._origin_ms)

    def value_at(self, elapsed_ms: float) -> float:
        """Signal value `elapsed_ms` after `begin()`."""
        hr = self.base_bpm + math.sin(elapsed_ms / 5000.0) * 3.0
        phase = (elapsed_ms / 1000.0) * (hr / 60.0) * 2.0 * math.pi

        systolic = max(0.0, math.sin(phase)) ** 1.8
        dicrotic = max(0.0, math.sin(phase * 2.0 + 0.6)) ** 2 * 0.25
        respiratory = math.sin(elapsed_ms / 3500.0) * 0.03
        motion = math.sin(elapsed_ms / 180.0) * 0.015
        noise = (float(self._rng.random()) - 0.5) * 0.02

        return _BASELINE + _AMPLITUDE * (systolic + dicrotic + respiratory + motion + noise)
