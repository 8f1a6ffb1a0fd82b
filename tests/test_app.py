"""Tests for the HTTP ingestion API"""
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from anomaly_pipeline.app import create_app
from anomaly_pipeline.pipeline import Pipeline
from anomaly_pipeline.retry import BackoffSchedule
from anomaly_pipeline.sinks import CollectingAlertSink


def _scoring(request: httpx.Request) -> httpx.Response:
    cluster_id, month, temp, humidity, water = json.loads(request.content)
    if cluster_id == 7:
        return httpx.Response(503)
    return httpx.Response(200, json={"loss_mae": [temp / 100.0], "anomaly_std": [temp > 50.0]})


@pytest.fixture
def sink():
    return CollectingAlertSink()


@pytest.fixture
def client(make_cfg, sink):
    scoring_http = httpx.AsyncClient(transport=httpx.MockTransport(_scoring))
    # no waiting between retries in API tests
    cfg = make_cfg(scoring_retry=BackoffSchedule(delays_s=(0.0,), max_attempts=2))
    pipeline = Pipeline(cfg, scoring_http=scoring_http, sink=sink)
    with TestClient(create_app(cfg, pipeline)) as c:
        yield c


def test_post_batch_json_array(client, sink):
    body = [
        {"DeviceId": "D1", "Month": 6, "Temperature": 70.0, "Humidity": 80.0, "WaterLevel": 4.0, "ClusterId": 3},
        {"DeviceId": "D2", "Month": 6, "Temperature": 20.0, "Humidity": 40.0, "WaterLevel": 1.0, "ClusterId": 3},
    ]

    response = client.post("/batches", content=json.dumps(body))

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["total_groups"] == 2
    assert data["succeeded_groups"] == 2
    assert data["alerts_raised"] == 1
    assert [e.device_id for e in sink.events] == ["D1"]


def test_post_batch_partial_failure_is_reported(client):
    body = "6,20.0,40.0,1.0,3,D1\n6,20.0,40.0,1.0,7,D2\nnot-a-record\n"

    response = client.post("/batches", content=body)

    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is False
    assert data["succeeded_groups"] == 1
    kinds = sorted(f["kind"] for f in data["failures"])
    assert kinds == ["DecodeError", "ScoringError/transient"]
    group_failure = next(f for f in data["failures"] if f["key"] is not None)
    assert group_failure["key"] == {"device_id": "D2", "cluster_id": 7, "time_bucket": 6}


def test_post_batch_bad_envelope(client):
    response = client.post("/batches", content='[{"DeviceId": ')

    assert response.status_code == 400
    assert "JSON array" in response.json()["detail"]


def test_health_and_metrics(client):
    client.post("/batches", content="6,70.0,80.0,4.0,3,D1\n")

    health = client.get("/health").json()
    metrics = client.get("/metrics").json()

    assert health["ok"] is True
    assert health["store"] == "memory"
    assert health["relay_enabled"] is False
    assert metrics["anomalies"] == {"Anomalies{3}": 1}
    assert metrics["batches"]["processed"] == 1


def test_app_is_built_from_env_only_on_demand(monkeypatch):
    import anomaly_pipeline.app as app_module

    monkeypatch.setenv("SCORING_URL", "http://model.test/score")
    monkeypatch.delenv("DB_PATH", raising=False)
    monkeypatch.delenv("NOTIFY_URL", raising=False)

    assert not hasattr(app_module, "app")
    with TestClient(app_module.app_from_env()) as c:
        health = c.get("/health").json()

    assert health["scoring_url"] == "http://model.test/score"
    assert health["store"] == "memory"
