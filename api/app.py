"""
api/app.py — FastAPI application factory
==========================================
Creates and configures the FastAPI instance together with the single
`MeasurementController` it serves.  `main.py` stays minimal.

CORS
----
We allow all origins by default (suitable for local development and the
mobile client on the same network).  In a production deployment restrict
`allow_origins` to your frontend domain.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import router
from config import API_TITLE, API_VERSION, DEFAULT_CONFIG, HISTORY_PATH, SIGNAL_SOURCE
from measurement.controller import MeasurementController
from measurement.scheduler import ThreadingScheduler
from ppg.sources import SignalSource, SyntheticPPGSource
from storage.history import HistoryStore, JsonFileKeyValueStore
from utils.logger import get_logger

logger = get_logger("api.app")


def build_source(kind: str = SIGNAL_SOURCE) -> SignalSource:
    """Instantiate the configured signal source ("synthetic" or "camera")."""
    if kind == "camera":
        # Lazy import — keeps the server bootable without OpenCV.
        from camera.finger import CameraPPGSource
        return CameraPPGSource()
    if kind == "synthetic":
        return SyntheticPPGSource()
    raise ValueError(f"Unknown signal source '{kind}'. Choose 'synthetic' or 'camera'.")


def create_app(
    controller: MeasurementController | None = None,
    history_store: HistoryStore | None = None,
) -> FastAPI:
    """
    Construct and return the configured FastAPI application.

    This is a *factory function* (rather than a module-level singleton)
    so that tests can inject a controller driven by a virtual clock and
    an in-memory history store.  `/history` always reads the store the
    controller saves into: an injected controller brings its own unless
    `history_store` is given explicitly.
    """
    owned_scheduler: ThreadingScheduler | None = None

    if history_store is None and controller is not None:
        history_store = controller.history_store
        if history_store is None:
            raise ValueError("An injected controller needs a history store.")
    if history_store is None:
        history_store = HistoryStore(JsonFileKeyValueStore(HISTORY_PATH))
    if controller is None:
        owned_scheduler = ThreadingScheduler()
        controller = MeasurementController(
            source=build_source(),
            scheduler=owned_scheduler,
            config=DEFAULT_CONFIG,
            history_store=history_store,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.controller.reset()
        if owned_scheduler is not None:
            owned_scheduler.close()

    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        description=(
            "Fingertip photoplethysmography (PPG) heart-rate measurement API. "
            "⚠️ WELLNESS TOOL ONLY — not a medical device."
        ),
        lifespan=lifespan,
    )
    app.state.controller = controller
    app.state.history_store = history_store

    # ── CORS ────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],           # Restrict in production!
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Mount routes ────────────────────────────────────────────────────
    app.include_router(router)

    logger.info("App created (%s scheduler).", "real-time" if owned_scheduler else "injected")
    return app
