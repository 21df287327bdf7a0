import importlib
import os

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def server(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_DIR", str(tmp_path))
    monkeypatch.delenv("REDIS_URL", raising=False)
    monkeypatch.setenv("HEDGEBRAIN_SAVE_DEBOUNCE_S", "60")
    import server.main as main

    main = importlib.reload(main)
    with TestClient(main.app) as client:
        yield main, client


def test_health(server):
    _, client = server
    assert client.get("/healthz").json() == {"status": "healthy"}
    assert client.get("/").json()["ok"] is True


def test_round_trip_over_http(server, tmp_path):
    main, client = server
    r = client.post("/profile", json={"profile_id": "web"})
    assert r.status_code == 200
    assert r.json()["profileId"] == "web"
    r = client.post("/settings", json={"difficulty": "ruthless", "predictor_enabled": True})
    assert r.json()["difficulty"] == "ruthless"
    assert r.json()["predictorEnabled"] is True

    for move in ("rock", "rock", 0):
        pred = client.post("/predict").json()
        assert pred["ai_move"] in ("rock", "paper", "scissors")
        assert "distribution" in pred["meta"]
        fb = client.post("/feedback", json={"user_move": move}).json()
        assert fb["ok"] is True
        assert fb["outcome"] in ("win", "lose", "tie")

    assert client.post("/save").json() == {"ok": True, "saved": True}
    assert os.path.exists(tmp_path / "model_web.json")
    assert main.brain.store.load("web").rounds_seen == 3


def test_bad_input_is_a_400(server):
    _, client = server
    client.post("/profile", json={"profile_id": "bad"})
    assert client.post("/settings", json={"difficulty": "godlike"}).status_code == 400
    assert client.post("/feedback", json={"user_move": "rock"}).status_code == 400
    client.post("/predict")
    assert client.post("/feedback", json={"user_move": "spock"}).status_code == 400


def test_training_endpoints(server):
    _, client = server
    client.post("/profile", json={"profile_id": "trainee"})
    status = client.post("/training/begin").json()
    assert status["trainingActive"] is True
    for _ in range(15):
        client.post("/predict")
        client.post("/feedback", json={"user_move": "paper"})
    client.post("/save")
    status = client.post("/training/reset").json()
    assert status["trained"] is False
    assert status["difficulty"] == "fair"
    assert status["historyRounds"] == 0
