"""
api/schemas.py — Pydantic request & response models
=====================================================
Centralises all data-transfer objects so that FastAPI can auto-generate
OpenAPI docs and perform input validation for free.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

from storage.history import HeartRateEntry


# ── Request Models ───────────────────────────────────────────────────────────


class StartRequest(BaseModel):
    """Optionally override the measuring-phase length for this session."""
    duration_seconds: Optional[int] = Field(
        None, ge=10, le=120,
        description="Measuring-phase length; defaults to 30 s.",
    )


# ── Response Models ──────────────────────────────────────────────────────────


class StatusResponse(BaseModel):
    state: Literal["idle", "preparing", "measuring", "completed"]
    live_bpm: int
    progress_percent: float
    finger_detected: bool
    quality: Literal["poor", "fair", "good"]
    quality_message: str
    final_bpm: Optional[int] = None
    bpm_category: Optional[str] = None
    message: str


class ActionResponse(BaseModel):
    status: str
    message: str


class HistorySummary(BaseModel):
    """Chart statistics over the most recent readings (oldest → newest)."""
    points: list[HeartRateEntry]
    min: int
    max: int
    range: int


class HistoryResponse(BaseModel):
    entries: list[HeartRateEntry]
    summary: HistorySummary
