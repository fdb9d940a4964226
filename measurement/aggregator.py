"""
measurement/aggregator.py — Live BPM, signal quality & final reading
=====================================================================
Individual estimates from `features.hr.estimate_bpm()` are noisy: each one
is computed from only ~12 s of signal.  The aggregator keeps the last 15
estimates and derives

* the **live BPM**   — rounded mean of the last 8 estimates;
* the **quality**    — from the population variance of those 8:
                       < 15 → good, < 40 → fair, otherwise poor;
* the **final BPM**  — a 20 % trimmed mean of the whole history, computed
                       once when the session ends.
"""

from collections import deque
from dataclasses import dataclass
from typing import Literal

from config import DEFAULT_CONFIG, VARIANCE_SENTINEL, PPGConfig
from features.stats import population_variance, round_half_up, trimmed_mean

Quality = Literal["poor", "fair", "good"]

_QUALITY_MESSAGES = {
    "good": "Excellent signal",
    "fair": "Signal OK",
    "poor": "Adjust finger position",
}


def classify_quality(variance: float, good_below: float = 15.0, fair_below: float = 40.0) -> Quality:
    """Map a BPM variance onto a signal-quality label."""
    if variance < good_below:
        return "good"
    if variance < fair_below:
        return "fair"
    return "poor"


def quality_message(quality: Quality) -> str:
    """Human-readable hint for the quality label."""
    return _QUALITY_MESSAGES.get(quality, _QUALITY_MESSAGES["poor"])


@dataclass(frozen=True)
class AggregateUpdate:
    """Result of feeding one estimate into the aggregator."""
    live_bpm: int
    variance: float
    quality: Quality


class BPMAggregator:
    """Bounded BPM history with smoothing and quality classification."""

    def __init__(self, config: PPGConfig = DEFAULT_CONFIG):
        self._config = config
        self._history: deque[int] = deque(maxlen=config.bpm_history_size)

    def add(self, bpm: int) -> AggregateUpdate:
        """Record one estimate and return the refreshed live BPM & quality."""
        self._history.append(bpm)   # deque(maxlen) evicts the oldest
        window = list(self._history)[-self._config.quality_window:]

        live = round_half_up(sum(window) / len(window))
        variance = population_variance(window, sentinel=VARIANCE_SENTINEL)
        quality = classify_quality(
            variance,
            good_below=self._config.good_variance,
            fair_below=self._config.fair_variance,
        )
        return AggregateUpdate(live_bpm=live, variance=variance, quality=quality)

    def final_bpm(self, fallback: int) -> int | None:
        """
        Final session reading.

        With at least `min_readings_for_bpm` estimates the trimmed mean of
        the history is used; otherwise (or if trimming leaves nothing)
        `fallback` — the last live BPM — is returned when positive.
        """
        if len(self._history) >= self._config.min_readings_for_bpm:
            result = trimmed_mean(self._history, self._config.trim_proportion)
            if result is not None:
                return result
            return fallback if fallback > 0 else None
        if fallback > 0:
            return fallback
        return None

    @property
    def history(self) -> list[int]:
        return list(self._history)

    def clear(self) -> None:
        self._history.clear()

    def __len__(self) -> int:
        return len(self._history)
