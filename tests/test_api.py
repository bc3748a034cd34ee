import tempfile

import pytest
from fastapi.testclient import TestClient

from api import main

EVENTS = [
    {"event": "start", "budget": 100},
    {"event": "step", "opcode": "PUSH1", "budget_before": 100, "budget_after": 97},
    {"event": "step", "opcode": "STOP", "budget_before": 97, "budget_after": 97},
    {"event": "end", "rest_budget": 97},
]


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "RESULTS_DIR", tmp_path / "results")
    return TestClient(main.app)


def test_root_and_versions(client):
    assert client.get("/").json() == {"message": "tracelab-api ok"}
    v = client.get("/versions").json()
    assert v["api"] == "1.0" and "psutil" in v


def test_tracers(client):
    body = client.get("/tracers").json()
    assert body["ok"] and "timingTracer" in body["tracers"]


def test_trace_saves_result(client, tmp_path):
    r = client.post("/trace", json={"tracer": "timingTracer", "events": EVENTS})
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] and body["rows"] == 2
    assert body["result"].splitlines()[0] == "opcode,time,cost"
    saved = tmp_path / "results"
    assert len(list(saved.glob("timingTracer_*.csv"))) == 1
    files = client.get("/results").json()["files"]
    assert len(files) == 1


def test_trace_without_saving(client, tmp_path):
    r = client.post("/trace", json={"tracer": "timingTracer", "events": EVENTS, "save": False})
    assert r.json()["ok"]
    assert "path" not in r.json()
    assert client.get("/results").json()["files"] == []


def test_unknown_tracer(client):
    r = client.post("/trace", json={"tracer": "gpuTracer", "events": EVENTS})
    assert r.status_code == 400
    assert r.json()["ok"] is False


def test_bad_config(client):
    r = client.post("/trace", json={"tracer": "cycleTracer", "config": {"resolution": 0}, "events": EVENTS})
    assert r.status_code == 400
    assert "resolution" in r.json()["error"]


def test_bad_event(client):
    r = client.post("/trace", json={"tracer": "timingTracer", "events": [{"event": "rewind"}]})
    assert r.status_code == 400


def test_trace_rejects_csv_path(client, tmp_path):
    keep = tmp_path / "precious.txt"
    keep.write_text("keep me")
    r = client.post("/trace", json={"tracer": "memoryTracer", "config": {"csv_path": str(keep)}, "events": EVENTS})
    assert r.status_code == 400
    assert "csv_path" in r.json()["error"]
    assert keep.read_text() == "keep me"


def test_trace_rejects_store_override(client):
    r = client.post("/trace", json={"tracer": "cycleTracer", "config": {"store": "file"}, "events": EVENTS})
    assert r.status_code == 400
    assert r.json()["ok"] is False


@pytest.mark.parametrize("event", [
    {"event": "start"},
    {"event": "start", "budget": None},
    {"event": "step", "opcode": "ADD", "budget_before": "lots", "budget_after": 1},
])
def test_malformed_event_is_a_bad_request(client, event):
    r = client.post("/trace", json={"tracer": "timingTracer", "events": [event]})
    assert r.status_code == 400
    assert r.json()["ok"] is False


def test_failed_trace_leaves_no_store_file(client, tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    events = EVENTS[:2] + [{"event": "step", "opcode": "ADD"}]
    r = client.post("/trace", json={"tracer": "memoryTracer", "events": events})
    assert r.status_code == 400
    assert list(tmp_path.glob("tracelab_*.csv")) == []
