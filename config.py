"""
config.py — Centralised configuration & hyper-parameters
=========================================================
Every tunable constant in the project lives here so that the rest of the
codebase can import from a single source of truth.

The measurement pipeline itself never reads these module constants
directly: they are bundled into an immutable `PPGConfig` that is handed to
the `MeasurementController` at construction time.  Tests build their own
`PPGConfig` (e.g. with a shorter session) without touching global state.
"""

import logging
import os
from dataclasses import dataclass

# ─── Camera ──────────────────────────────────────────────────────────────────
CAMERA_INDEX: int = 0          # Device index passed to cv2.VideoCapture
CAMERA_WIDTH: int = 320        # Fingertip PPG only needs a coarse image
CAMERA_HEIGHT: int = 240
CAMERA_FPS: int = 30           # Requested FPS; actual FPS may differ

# ─── Measurement Timing (milliseconds) ───────────────────────────────────────
MEASUREMENT_DURATION_MS: int = 30_000   # Length of the measuring phase
WARMUP_MS: int = 2_000                  # Finger-placement settling time
CAPTURE_INTERVAL_MS: int = 250          # One intensity sample per tick
PROGRESS_INTERVAL_MS: int = 100         # Progress ticker period

# ─── Signal Buffer ───────────────────────────────────────────────────────────
RETENTION_WINDOW_MS: int = 12_000       # Samples older than this are purged
MIN_SAMPLES_FOR_ESTIMATE: int = 20      # Estimation runs once buffer > this

# ─── Peak Detection ──────────────────────────────────────────────────────────
MIN_SAMPLES_FOR_PEAKS: int = 10
SMOOTHING_WINDOW: int = 5               # Moving-average radius (samples)
THRESHOLD_STD_FACTOR: float = 0.1       # threshold = mean + factor * std
# 300 ms → 200 BPM ceiling, 2000 ms → 30 BPM floor
PEAK_MIN_DISTANCE_MS: int = 300
PEAK_MAX_DISTANCE_MS: int = 2_000

# ─── Rate Estimation ─────────────────────────────────────────────────────────
MIN_PEAKS_FOR_BPM: int = 3
TUKEY_FENCE_K: float = 1.5
MIN_BPM: int = 40
MAX_BPM: int = 200

# ─── Aggregation & Quality ───────────────────────────────────────────────────
BPM_HISTORY_SIZE: int = 15
QUALITY_WINDOW: int = 8                 # Live BPM / variance use the last N
MIN_READINGS_FOR_BPM: int = 8           # Needed for the trimmed-mean result
TRIM_PROPORTION: float = 0.2            # Dropped from each tail
GOOD_VARIANCE: float = 15.0             # variance < 15  → good
FAIR_VARIANCE: float = 40.0             # variance < 40  → fair, else poor
VARIANCE_SENTINEL: float = 999.0        # Used when fewer than 2 readings

# ─── Finger Detection (camera source) ────────────────────────────────────────
# A fingertip pressed on the lens with the torch on gives a bright red frame.
MIN_RED_THRESHOLD: float = 50.0
MAX_RED_FOR_FINGER: float = 255.0
MIN_BRIGHTNESS_FOR_FINGER: float = 20.0

# ─── Synthetic Source ────────────────────────────────────────────────────────
SYNTHETIC_BASE_BPM_MIN: int = 60        # Inclusive
SYNTHETIC_BASE_BPM_MAX: int = 95        # Inclusive

# Which signal source the API / CLI uses by default: "synthetic" | "camera"
SIGNAL_SOURCE: str = os.environ.get("PPG_SIGNAL_SOURCE", "synthetic")

# ─── Persistence ─────────────────────────────────────────────────────────────
HISTORY_STORAGE_KEY: str = "heartRateHistory"
HISTORY_MAX_ENTRIES: int = 50
HISTORY_PATH: str = os.environ.get("PPG_HISTORY_PATH", "data/heart_rate_history.json")

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL: int = logging.getLevelName(os.environ.get("PPG_LOG_LEVEL", "INFO").upper())
if not isinstance(LOG_LEVEL, int):
    LOG_LEVEL = logging.INFO

# ─── API ─────────────────────────────────────────────────────────────────────
API_TITLE = "PPG Heart-Rate Measurement API"
API_VERSION = "0.1.0"


@dataclass(frozen=True)
class PPGConfig:
    """Immutable bundle of every tunable used by one measurement session."""

    measurement_duration_ms: int = MEASUREMENT_DURATION_MS
    warmup_ms: int = WARMUP_MS
    capture_interval_ms: int = CAPTURE_INTERVAL_MS
    progress_interval_ms: int = PROGRESS_INTERVAL_MS

    retention_window_ms: int = RETENTION_WINDOW_MS
    min_samples_for_estimate: int = MIN_SAMPLES_FOR_ESTIMATE

    min_samples_for_peaks: int = MIN_SAMPLES_FOR_PEAKS
    smoothing_window: int = SMOOTHING_WINDOW
    threshold_std_factor: float = THRESHOLD_STD_FACTOR
    peak_min_distance_ms: int = PEAK_MIN_DISTANCE_MS
    peak_max_distance_ms: int = PEAK_MAX_DISTANCE_MS

    min_peaks_for_bpm: int = MIN_PEAKS_FOR_BPM
    tukey_fence_k: float = TUKEY_FENCE_K
    min_bpm: int = MIN_BPM
    max_bpm: int = MAX_BPM

    bpm_history_size: int = BPM_HISTORY_SIZE
    quality_window: int = QUALITY_WINDOW
    min_readings_for_bpm: int = MIN_READINGS_FOR_BPM
    trim_proportion: float = TRIM_PROPORTION
    good_variance: float = GOOD_VARIANCE
    fair_variance: float = FAIR_VARIANCE

    def __post_init__(self):
        if self.capture_interval_ms <= 0 or self.progress_interval_ms <= 0:
            raise ValueError("Tick intervals must be positive.")
        if self.measurement_duration_ms <= 0:
            raise ValueError("measurement_duration_ms must be positive.")
        if not 0.0 <= self.trim_proportion < 0.5:
            raise ValueError("trim_proportion must be in [0, 0.5).")
        if self.min_bpm >= self.max_bpm:
            raise ValueError("min_bpm must be below max_bpm.")


DEFAULT_CONFIG = PPGConfig()
