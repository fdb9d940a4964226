"""
features/stats.py — Small numeric helpers shared by the pipeline
=================================================================
Rounding, variance and trimmed mean used by the rate estimator and the
session aggregator.  All BPM values are rounded half-up (2.5 → 3), not
with Python's banker's rounding, so that a reading of 74.5 is reported
as 75 regardless of parity.
"""

import math
from typing import Sequence

import numpy as np


def round_half_up(x: float) -> int:
    """Round to the nearest integer, ties towards +∞."""
    return int(math.floor(x + 0.5))


def population_variance(values: Sequence[float], sentinel: float = 999.0) -> float:
    """
    Population variance (ddof=0) of `values`.

    Fewer than two values carry no spread information; `sentinel` is
    returned instead so that such windows always classify as poor.
    """
    if len(values) < 2:
        return sentinel
    return float(np.var(np.asarray(values, dtype=np.float64)))


def trimmed_slice(values: Sequence[float], proportion: float = 0.2) -> list[float]:
    """
    Sort `values` and drop `floor(n*p)` from the bottom and
    `n - ceil(n*(1-p))` from the top.
    """
    ordered = sorted(values)
    n = len(ordered)
    lo = math.floor(n * proportion)
    hi = math.ceil(n * (1.0 - proportion))
    return ordered[lo:hi]


def trimmed_mean(values: Sequence[float], proportion: float = 0.2) -> int | None:
    """Rounded mean of `trimmed_slice(values)`, or None if nothing is left."""
    kept = trimmed_slice(values, proportion)
    if not kept:
        return None
    return round_half_up(sum(kept) / len(kept))
