#!/usr/bin/env python3
"""
demo_cli.py — Standalone command-line demo
============================================
Runs one heart-rate measurement WITHOUT the FastAPI server.
Useful for quick testing, demos, and debugging.

Usage:
    python demo_cli.py                       # synthetic signal, real time (32 s)
    python demo_cli.py --fast --seed 7       # synthetic signal, simulated instantly
    python demo_cli.py --source camera       # fingertip on the camera lens
    python demo_cli.py --fast --save         # also append to the history file

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool — NOT a medical device.
"""

import argparse
import logging
import sys
import time
from dataclasses import replace

from config import DEFAULT_CONFIG, HISTORY_PATH
from features.hr import bpm_category
from measurement.controller import MeasurementController, MeasurementState
from measurement.scheduler import ThreadingScheduler, VirtualScheduler
from ppg.sources import SyntheticPPGSource
from storage.history import HistoryStore, JsonFileKeyValueStore, PersistenceError
from utils.logger import get_logger, set_level

logger = get_logger("demo_cli")


def pretty_print(label: str, value, unit: str = "") -> None:
    """Colourised terminal output."""
    print(f"  \033[1;36m{label:<22}\033[0m \033[1;33m{value}\033[0m {unit}")


def _run_fast(controller: MeasurementController, scheduler: VirtualScheduler) -> None:
    controller.start()
    scheduler.run_until_idle()


def _run_realtime(controller: MeasurementController) -> bool:
    """Poll until completion; returns False if the user aborted."""
    controller.start()
    try:
        while controller.state is not MeasurementState.COMPLETED:
            snap = controller.status()
            finger = "yes" if snap.finger_detected else "no "
            print(
                f"\r  [{snap.state.value:<9}] {snap.progress_percent:5.1f}%  "
                f"finger={finger}  live={snap.live_bpm:3d} BPM  quality={snap.quality:<4}",
                end="", flush=True,
            )
            time.sleep(0.5)
    except KeyboardInterrupt:
        controller.stop()
        print("\n\n  Measurement cancelled by user.")
        return False
    print()
    return True


def main():
    parser = argparse.ArgumentParser(description="PPG Heart-Rate CLI Demo")
    parser.add_argument("--source", choices=["synthetic", "camera"], default="synthetic")
    parser.add_argument("--seed", type=int, default=None, help="Seed for the synthetic source")
    parser.add_argument("--duration", type=int, default=30, help="Measuring phase (seconds)")
    parser.add_argument("--fast", action="store_true",
                        help="Simulate the session on a virtual clock (synthetic source only)")
    parser.add_argument("--save", action="store_true", help="Append the reading to the history file")
    parser.add_argument("--history-path", default=HISTORY_PATH)
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every estimate")
    args = parser.parse_args()

    if args.verbose:
        set_level(logging.DEBUG)
    if args.fast and args.source == "camera":
        parser.error("--fast only works with the synthetic source.")

    print("\n" + "=" * 60)
    print("  PPG HEART-RATE MEASUREMENT — CLI DEMO")
    print("=" * 60)
    print("  ⚠️  This is a WELLNESS ESTIMATION tool — NOT medical grade.")
    print("=" * 60 + "\n")

    if args.source == "camera":
        from camera.finger import CameraPPGSource
        source = CameraPPGSource()
        print("  Cover the camera lens (and torch) with your fingertip…\n")
    else:
        source = SyntheticPPGSource(seed=args.seed)

    config = replace(DEFAULT_CONFIG, measurement_duration_ms=args.duration * 1000)
    history_store = HistoryStore(JsonFileKeyValueStore(args.history_path))

    if args.fast:
        scheduler = VirtualScheduler()
        controller = MeasurementController(source, scheduler, config, history_store)
        _run_fast(controller, scheduler)
    else:
        scheduler = ThreadingScheduler()
        controller = MeasurementController(source, scheduler, config, history_store)
        try:
            if not _run_realtime(controller):
                sys.exit(0)
        finally:
            scheduler.close()

    snap = controller.status()

    # ── Pretty-print results ─────────────────────────────────────────────
    print("=" * 60)
    print("  RESULTS")
    print("=" * 60)
    if isinstance(source, SyntheticPPGSource):
        pretty_print("Simulated base rate", source.base_bpm, "BPM")
    pretty_print("Estimates collected", len(controller.bpm_history))
    if snap.final_bpm is None:
        print("\n    ⚠️  No reliable reading — keep your finger still and try again.")
        print()
        sys.exit(1)

    pretty_print("Heart Rate", snap.final_bpm, "BPM")
    pretty_print("Category", bpm_category(snap.final_bpm))
    pretty_print("Signal quality", snap.quality, f"({snap.quality_message})")

    if args.save:
        try:
            entry = controller.save()
        except PersistenceError as e:
            print(f"\n  ERROR: {e}")
            sys.exit(1)
        if entry is not None:
            pretty_print("Saved as", entry.id, f"→ {args.history_path}")

    print("\n" + "=" * 60)
    print("  ⚠️  DISCLAIMER: The value above is an ESTIMATE.")
    print("      Do NOT use for medical diagnosis or treatment.")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    main()
