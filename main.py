#!/usr/bin/env python3
"""
PPG Heart-Rate Measurement — Main Entry Point
==============================================
Launches the FastAPI backend with Uvicorn.
Run with:  python main.py

Set PPG_SIGNAL_SOURCE=camera to sample a real fingertip through the
camera instead of the synthetic waveform.

⚠️  DISCLAIMER: This is a WELLNESS ESTIMATION tool, NOT a medical device.
    Heart-rate readings are ESTIMATES derived from photoplethysmography.
    Do NOT use them for clinical diagnosis or treatment decisions.
"""

import uvicorn

from api.app import create_app

if __name__ == "__main__":
    app = create_app()
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        reload=False,
        log_level="info",
    )
