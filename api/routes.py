"""
api/routes.py — FastAPI route definitions
==========================================
All HTTP endpoints are defined here and wired into the app via
`app.include_router(router)` in `api/app.py`.

Endpoint summary
----------------
    GET  /health                 — Liveness probe
    POST /measurement/start      — Begin a measurement (2 s warm-up + 30 s)
    POST /measurement/stop       — Abort the running measurement
    POST /measurement/finish     — Finalize the running measurement early
    POST /measurement/reset      — Discard the result and return to idle
    GET  /measurement/status     — Poll state, live BPM, progress & quality
    POST /measurement/save       — Persist the completed reading
    GET  /history                — Saved readings, newest first, + chart stats
    GET  /docs                   — Auto-generated Swagger UI (FastAPI built-in)
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from api.schemas import (
    ActionResponse,
    HistoryResponse,
    HistorySummary,
    StartRequest,
    StatusResponse,
)
from measurement.controller import MeasurementController, MeasurementState
from storage.history import HeartRateEntry, HistoryStore, PersistenceError, summarize_history
from utils.logger import get_logger

logger = get_logger("api.routes")

router = APIRouter()


# ── Dependencies ──────────────────────────────────────────────────────────────
# One controller for the whole application lifetime, created by the app
# factory and kept on `app.state`.


def get_controller(request: Request) -> MeasurementController:
    return request.app.state.controller


def get_history_store(request: Request) -> HistoryStore:
    return request.app.state.history_store


# ── Health ────────────────────────────────────────────────────────────────────

@router.get("/health")
async def health():
    """Simple liveness check."""
    return {"status": "ok", "service": "PPG Heart-Rate Measurement"}


# ── Measurement Control ───────────────────────────────────────────────────────

@router.post("/measurement/start", response_model=ActionResponse)
def start_measurement(
    request: StartRequest = StartRequest(),
    controller: MeasurementController = Depends(get_controller),
):
    """
    Begin a measurement.  Returns immediately; timing runs in the
    background scheduler.

    Body (JSON, optional):
        duration_seconds : int   (10–120, default 30)

    Returns 409 if a measurement is already running.
    """
    duration_ms = request.duration_seconds * 1000 if request.duration_seconds else None
    if not controller.start(duration_ms=duration_ms):
        raise HTTPException(status_code=409, detail="A measurement is already in progress.")
    return ActionResponse(
        status="preparing",
        message="Place your fingertip over the camera. Poll GET /measurement/status for progress.",
    )


@router.post("/measurement/stop", response_model=ActionResponse)
def stop_measurement(controller: MeasurementController = Depends(get_controller)):
    """Abort the running measurement.  Returns 409 if nothing is running."""
    if not controller.stop():
        raise HTTPException(status_code=409, detail="No measurement is running.")
    return ActionResponse(status="idle", message="Measurement stopped.")


@router.post("/measurement/finish", response_model=ActionResponse)
def finish_measurement(controller: MeasurementController = Depends(get_controller)):
    """Finalize now instead of waiting for the deadline.  409 unless measuring."""
    if not controller.finish():
        raise HTTPException(status_code=409, detail="No measurement is in the measuring phase.")
    return ActionResponse(status="completed", message="Measurement finalized.")


@router.post("/measurement/reset", response_model=ActionResponse)
def reset_measurement(controller: MeasurementController = Depends(get_controller)):
    """Reset the session to idle so a new measurement can be started."""
    controller.reset()
    return ActionResponse(status="idle", message="Session reset. Ready for a new measurement.")


@router.get("/measurement/status", response_model=StatusResponse)
def measurement_status(controller: MeasurementController = Depends(get_controller)):
    """
    Poll the current session.

    Returns
    -------
    StatusResponse
        state            : "idle" | "preparing" | "measuring" | "completed"
        live_bpm         : smoothed BPM (0 until the first estimate)
        progress_percent : 0–100
        finger_detected  : whether the last sample saw a fingertip
        quality          : "poor" | "fair" | "good"
        final_bpm        : set once completed (may stay null)
    """
    snap = controller.status()

    messages = {
        MeasurementState.IDLE:      "No measurement in progress. POST /measurement/start to begin.",
        MeasurementState.PREPARING: "Hold still — letting the signal settle.",
        MeasurementState.MEASURING: f"Measuring — {snap.progress_percent:.0f}% complete.",
        MeasurementState.COMPLETED: (
            f"Done: {snap.final_bpm} BPM." if snap.final_bpm is not None
            else "Done, but no reliable reading was obtained. Try again."
        ),
    }

    return StatusResponse(
        state=snap.state.value,
        live_bpm=snap.live_bpm,
        progress_percent=snap.progress_percent,
        finger_detected=snap.finger_detected,
        quality=snap.quality,
        quality_message=snap.quality_message,
        final_bpm=snap.final_bpm,
        bpm_category=snap.bpm_category,
        message=messages[snap.state],
    )


@router.post("/measurement/save", response_model=HeartRateEntry, status_code=status.HTTP_201_CREATED)
def save_measurement(controller: MeasurementController = Depends(get_controller)):
    """
    Persist the completed reading.

    Returns 409 if there is no completed reading, or 503 if storage failed
    (the result is kept, so the call can simply be retried).
    """
    try:
        entry = controller.save()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    if entry is None:
        raise HTTPException(status_code=409, detail="No completed reading to save.")
    return entry


# ── History ───────────────────────────────────────────────────────────────────

@router.get("/history", response_model=HistoryResponse)
def history(store: HistoryStore = Depends(get_history_store)):
    """Saved readings (newest first) plus chart stats for the last 10."""
    entries = store.load()
    return HistoryResponse(entries=entries, summary=HistorySummary(**summarize_history(entries)))
