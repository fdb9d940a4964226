"""
ppg/peaks.py — Systolic peak detection
=======================================
Finds the timestamps of pulse peaks in the buffered intensity signal.

Algorithm
---------
1. Smooth the raw values with a centred moving average (radius 5).
2. Adaptive threshold = mean + 0.1 · std of the smoothed signal.  The
   fingertip signal rides on a large constant baseline with a small
   oscillation, so a low multiplier keeps sensitivity while still
   rejecting a flat trace (std ≈ 0 → nothing exceeds the mean).
3. Interior points (the first and last two are skipped) are candidates
   when they exceed the threshold, are strictly above their left
   neighbour and at least equal to their right neighbour, so a plateau
   top counts once.
4. A candidate closer than 300 ms to the previously accepted peak is
   dropped (200 BPM physiological ceiling).

Insufficient data is not an error: fewer than 10 samples returns [].
"""

from typing import Sequence

import numpy as np

from config import (
    MIN_SAMPLES_FOR_PEAKS,
    PEAK_MIN_DISTANCE_MS,
    SMOOTHING_WINDOW,
    THRESHOLD_STD_FACTOR,
)
from ppg.buffer import Sample
from ppg.filters import moving_average
from utils.logger import get_logger

logger = get_logger("ppg.peaks")

# Points this close to either end of the buffer are never peaks
_EDGE_MARGIN = 2


def detect_peaks(
    samples: Sequence[Sample],
    smoothing_window: int = SMOOTHING_WINDOW,
    threshold_factor: float = THRESHOLD_STD_FACTOR,
    min_distance_ms: float = PEAK_MIN_DISTANCE_MS,
    min_samples: int = MIN_SAMPLES_FOR_PEAKS,
) -> list[float]:
    """
    Return the peak timestamps (ms) of the smoothed signal, oldest first.

    Parameters
    ----------
    samples          : sequence of Sample, time-ordered.
    smoothing_window : moving-average radius in samples.
    threshold_factor : multiplier on the std for the detection threshold.
    min_distance_ms  : minimum spacing between accepted peaks.
    min_samples      : below this many samples no detection is attempted.
    """
    if len(samples) < min_samples:
        return []

    times = np.array([s.time_ms for s in samples], dtype=np.float64)
    smoothed = moving_average(np.array([s.value for s in samples]), smoothing_window)

    threshold = smoothed.mean() + threshold_factor * smoothed.std()

    # Vectorised local-maximum test over the interior points
    centre = smoothed[_EDGE_MARGIN:-_EDGE_MARGIN]
    left = smoothed[_EDGE_MARGIN - 1:-_EDGE_MARGIN - 1]
    right = smoothed[_EDGE_MARGIN + 1:len(smoothed) - _EDGE_MARGIN + 1]
    is_candidate = (centre > threshold) & (centre > left) & (centre >= right)
    candidate_idx = np.flatnonzero(is_candidate) + _EDGE_MARGIN

    peaks: list[float] = []
    for i in candidate_idx:
        t = float(times[i])
        if not peaks or t - peaks[-1] >= min_distance_ms:
            peaks.append(t)

    logger.debug(
        "%d samples → %d candidates, %d peaks (threshold=%.3f)",
        len(samples), len(candidate_idx), len(peaks), threshold,
    )
    return peaks
