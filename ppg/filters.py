"""
ppg/filters.py — Moving-average smoothing
==========================================
Removes sample-to-sample jitter from the raw intensity signal before peak
detection.

Why a plain moving average and not a Butterworth bandpass?
----------------------------------------------------------
* At 4 samples per second the cardiac band (0.7–3.3 Hz) sits right at or
  above Nyquist, so an IIR bandpass has nothing sensible to pass.
* The detector only needs the *shape* of the slow envelope plus an
  adaptive threshold, which a centred box filter provides with zero phase
  shift.

Edges are handled by clipping: the first and last `radius` points average
only the neighbours that exist, instead of padding with reflected or zero
values.
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view


def moving_average(values: np.ndarray, radius: int) -> np.ndarray:
    """
    Centred moving average with edge clipping.

    Parameters
    ----------
    values : ndarray, shape (N,)
        Raw signal.
    radius : int
        Each output point averages up to `2 * radius + 1` inputs,
        `values[i - radius : i + radius + 1]` clipped to the array bounds.

    Returns
    -------
    smoothed : ndarray, shape (N,)
    """
    values = np.asarray(values, dtype=np.float64)
    if radius < 0:
        raise ValueError(f"radius must be >= 0, got {radius}.")
    if values.size == 0 or radius == 0:
        return values.copy()

    n = values.size
    idx = np.arange(n)
    lo = np.maximum(idx - radius, 0)
    hi = np.minimum(idx + radius + 1, n)

    # Each window summed from its own values (zero-padded past the ends):
    # windows holding equal values must give bit-identical averages
    pad = np.zeros(radius)
    windows = sliding_window_view(np.concatenate((pad, values, pad)), 2 * radius + 1)
    return windows.sum(axis=1) / (hi - lo)
