"""
ppg/buffer.py — Rolling window of intensity samples
====================================================
The buffer is the only resource-bounding mechanism in the pipeline: each
append purges every sample that has fallen out of the retention window,
so memory stays at roughly `retention / capture_interval` samples
(48 with the defaults).
"""

from collections import deque
from dataclasses import dataclass

from config import RETENTION_WINDOW_MS


@dataclass(frozen=True)
class Sample:
    """One light-intensity reading."""
    time_ms: float
    value: float


class SignalBuffer:
    """Append-only, time-ordered sample window with age-based eviction."""

    def __init__(self, retention_ms: float = RETENTION_WINDOW_MS):
        self._retention_ms = retention_ms
        self._samples: deque[Sample] = deque()

    def append(self, sample: Sample) -> None:
        """
        Add `sample` and evict everything with `time <= sample.time - retention`.

        Samples must arrive in time order; an out-of-order sample is a
        caller bug and raises ValueError.
        """
        if self._samples and sample.time_ms < self._samples[-1].time_ms:
            raise ValueError(
                f"Sample at {sample.time_ms} ms is older than the newest "
                f"buffered sample ({self._samples[-1].time_ms} ms)."
            )
        self._samples.append(sample)
        cutoff = sample.time_ms - self._retention_ms
        while self._samples and self._samples[0].time_ms <= cutoff:
            self._samples.popleft()

    @property
    def samples(self) -> list[Sample]:
        """Snapshot of the retained samples, oldest first."""
        return list(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)
