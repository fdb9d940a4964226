import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from config import PPGConfig
from measurement.controller import MeasurementController
from measurement.scheduler import VirtualScheduler
from ppg.sources import SignalSource
from storage.history import HistoryStore, MemoryKeyValueStore


class SpikeSource(SignalSource):
    def sample(self, now_ms):
        return 110.0 if int(now_ms) % 1000 == 0 else 100.0


class BrokenKV:
    def get(self, key):
        return None

    def set(self, key, value):
        raise OSError("read-only filesystem")


def _client(kv=None):
    store = HistoryStore(kv or MemoryKeyValueStore())
    sched = VirtualScheduler()
    controller = MeasurementController(
        SpikeSource(), sched, PPGConfig(smoothing_window=0), history_store=store,
    )
    return TestClient(create_app(controller=controller, history_store=store)), sched


def test_health():
    client, _ = _client()
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_measurement_lifecycle_and_history():
    client, sched = _client()

    body = client.get("/measurement/status").json()
    assert body["state"] == "idle"
    assert body["final_bpm"] is None

    assert client.post("/measurement/start").status_code == 200
    assert client.post("/measurement/start").status_code == 409
    assert client.get("/measurement/status").json()["state"] == "preparing"

    sched.advance(32_000)
    body = client.get("/measurement/status").json()
    assert body["state"] == "completed"
    assert body["final_bpm"] == 60
    assert body["bpm_category"] == "normal"
    assert body["quality"] == "good"

    resp = client.post("/measurement/save")
    assert resp.status_code == 201
    saved = resp.json()
    assert saved["bpm"] == 60

    history = client.get("/history").json()
    assert [e["id"] for e in history["entries"]] == [saved["id"]]
    assert history["summary"]["range"] == 1

    assert client.post("/measurement/reset").status_code == 200
    assert client.get("/measurement/status").json()["state"] == "idle"
    assert client.post("/measurement/save").status_code == 409


def test_start_with_duration_override():
    client, sched = _client()
    resp = client.post("/measurement/start", json={"duration_seconds": 10})
    assert resp.status_code == 200
    sched.advance(12_000)
    assert client.get("/measurement/status").json()["state"] == "completed"


def test_start_rejects_invalid_duration():
    client, _ = _client()
    assert client.post("/measurement/start", json={"duration_seconds": 5}).status_code == 422


def test_stop_and_finish_conflicts():
    client, sched = _client()
    assert client.post("/measurement/stop").status_code == 409
    assert client.post("/measurement/finish").status_code == 409

    client.post("/measurement/start")
    sched.advance(12_000)
    assert client.post("/measurement/finish").status_code == 200
    assert client.get("/measurement/status").json()["final_bpm"] == 60

    client.post("/measurement/start")
    assert client.post("/measurement/stop").status_code == 200
    assert client.get("/measurement/status").json()["state"] == "idle"


def test_save_failure_is_service_unavailable():
    client, sched = _client(kv=BrokenKV())
    client.post("/measurement/start")
    sched.advance(32_000)

    resp = client.post("/measurement/save")
    assert resp.status_code == 503
    body = client.get("/measurement/status").json()
    assert body["state"] == "completed"
    assert body["final_bpm"] == 60


def test_history_reads_the_controller_store_by_default():
    store = HistoryStore(MemoryKeyValueStore())
    sched = VirtualScheduler()
    controller = MeasurementController(
        SpikeSource(), sched, PPGConfig(smoothing_window=0), history_store=store,
    )
    client = TestClient(create_app(controller=controller))
    assert client.app.state.history_store is store

    client.post("/measurement/start")
    sched.advance(32_000)
    saved = client.post("/measurement/save").json()
    entries = client.get("/history").json()["entries"]
    assert [e["id"] for e in entries] == [saved["id"]]


def test_injected_controller_without_store_is_rejected():
    controller = MeasurementController(SpikeSource(), VirtualScheduler())
    with pytest.raises(ValueError):
        create_app(controller=controller)
