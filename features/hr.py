"""
features/hr.py — Heart Rate estimation from peak timestamps
============================================================
Converts the peak times found by `ppg.peaks.detect_peaks()` into a single
beats-per-minute estimate using two stages of outlier rejection:

1. **Physiological bound** — an inter-peak interval outside
   [300, 2000] ms (200 / 30 BPM) is discarded outright.

2. **Tukey fence** — of the remaining intervals, keep those within
   [Q1 − 1.5·IQR, Q3 + 1.5·IQR].  Quartiles are taken *by index*
   (`sorted[floor(n·0.25)]`, `sorted[floor(n·0.75)]`), not by an
   interpolated percentile.  Should fewer than two intervals survive the
   fence, the mean of all bounded intervals is used instead.

BPM = round(60000 / mean interval).  Results outside [40, 200] BPM are
treated as "no estimate" rather than clipped: a clipped value would look
like a real reading.
"""

import math
from typing import Sequence

import numpy as np

from config import (
    MAX_BPM,
    MIN_BPM,
    MIN_PEAKS_FOR_BPM,
    PEAK_MAX_DISTANCE_MS,
    PEAK_MIN_DISTANCE_MS,
    TUKEY_FENCE_K,
)
from features.stats import round_half_up
from utils.logger import get_logger

logger = get_logger("features.hr")


def peak_intervals(
    peaks: Sequence[float],
    min_interval_ms: float = PEAK_MIN_DISTANCE_MS,
    max_interval_ms: float = PEAK_MAX_DISTANCE_MS,
) -> np.ndarray:
    """Consecutive peak-to-peak intervals (ms) inside the physiological bound."""
    intervals = np.diff(np.asarray(peaks, dtype=np.float64))
    keep = (intervals >= min_interval_ms) & (intervals <= max_interval_ms)
    return intervals[keep]


def tukey_filter(intervals: np.ndarray, k: float = TUKEY_FENCE_K) -> np.ndarray:
    """Keep intervals within the index-quartile Tukey fence."""
    ordered = np.sort(intervals)
    n = ordered.size
    q1 = ordered[math.floor(n * 0.25)]
    q3 = ordered[math.floor(n * 0.75)]
    iqr = q3 - q1
    keep = (ordered >= q1 - k * iqr) & (ordered <= q3 + k * iqr)
    return ordered[keep]


def estimate_bpm(
    peaks: Sequence[float],
    min_peaks: int = MIN_PEAKS_FOR_BPM,
    min_interval_ms: float = PEAK_MIN_DISTANCE_MS,
    max_interval_ms: float = PEAK_MAX_DISTANCE_MS,
    fence_k: float = TUKEY_FENCE_K,
    min_bpm: int = MIN_BPM,
    max_bpm: int = MAX_BPM,
) -> int | None:
    """
    Estimate heart rate from peak timestamps.

    Parameters
    ----------
    peaks : sequence of float
        Peak times in milliseconds, strictly increasing.

    Returns
    -------
    int | None
        BPM in [min_bpm, max_bpm], or None when there are too few peaks,
        too few plausible intervals, or the result is implausible.
    """
    if len(peaks) < min_peaks:
        return None

    intervals = peak_intervals(peaks, min_interval_ms, max_interval_ms)
    if intervals.size < 2:
        logger.debug("Only %d plausible intervals — no estimate.", intervals.size)
        return None

    selected = tukey_filter(intervals, fence_k)
    if selected.size < 2:
        selected = intervals

    bpm = round_half_up(60000.0 / float(selected.mean()))
    if not min_bpm <= bpm <= max_bpm:
        logger.debug("Discarding implausible estimate of %d BPM.", bpm)
        return None

    logger.debug(
        "BPM=%d from %d/%d intervals (mean=%.1f ms)",
        bpm, selected.size, intervals.size, float(selected.mean()),
    )
    return bpm


def bpm_category(bpm: float) -> str:
    """
    Coarse resting heart-rate category.

        < 60        bradycardia
        60 – 100    normal
        101 – 120   elevated
        > 120       tachycardia
    """
    if bpm < 60:
        return "bradycardia"
    if bpm <= 100:
        return "normal"
    if bpm <= 120:
        return "elevated"
    return "tachycardia"
