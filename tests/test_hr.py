import itertools

import numpy as np

from features.hr import bpm_category, estimate_bpm, peak_intervals, tukey_filter


def _peaks_from_intervals(intervals, start=0.0):
    return [start, *(start + t for t in itertools.accumulate(intervals))]


def test_regular_peaks_give_exact_rate():
    assert estimate_bpm([0, 800, 1600, 2400, 3200]) == 75


def test_tukey_fence_removes_long_interval():
    intervals = [800, 820, 810, 2000, 790]
    kept = tukey_filter(np.array(intervals, dtype=float))
    assert sorted(kept.tolist()) == [790, 800, 810, 820]
    # mean 805 ms → 74.53 BPM → 75
    assert estimate_bpm(_peaks_from_intervals(intervals)) == 75


def test_fewer_than_three_peaks_gives_no_estimate():
    assert estimate_bpm([]) is None
    assert estimate_bpm([0, 800]) is None


def test_implausible_intervals_are_dropped():
    # 100 ms intervals are all below the 300 ms floor
    assert estimate_bpm([0, 100, 200, 300]) is None
    assert peak_intervals([0, 100, 400, 2600]).tolist() == [300.0]


def test_single_valid_interval_gives_no_estimate():
    assert estimate_bpm([0, 800, 3000]) is None


def test_rate_bounds():
    assert estimate_bpm([0, 300, 600, 900]) == 200
    # 1600 ms → 37.5 → 38 BPM, below the 40 BPM floor
    assert estimate_bpm([0, 1600, 3200, 4800]) is None
    # 1500 ms → 40 BPM exactly
    assert estimate_bpm([0, 1500, 3000, 4500]) == 40


def test_estimate_is_always_within_bounds():
    rng = np.random.default_rng(7)
    for _ in range(200):
        intervals = rng.uniform(250, 2100, size=rng.integers(2, 12))
        bpm = estimate_bpm(_peaks_from_intervals(intervals.tolist()))
        assert bpm is None or 40 <= bpm <= 200


def test_bpm_category():
    assert bpm_category(55) == "bradycardia"
    assert bpm_category(60) == "normal"
    assert bpm_category(100) == "normal"
    assert bpm_category(115) == "elevated"
    assert bpm_category(121) == "tachycardia"
