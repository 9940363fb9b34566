"""Tests for the role-based app factory."""

from fastapi.testclient import TestClient

from castlestay.api.factory import create_app
from castlestay.observability.correlation import CORRELATION_ID_HEADER


def test_public_health():
    response = TestClient(create_app(role="public")).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_worker_has_task_health():
    client = TestClient(create_app(role="worker"))
    assert client.get("/tasks/health").json()["subsystem"] == "tasks"
    assert client.get("/health").status_code == 200


def test_public_has_no_task_routes():
    assert TestClient(create_app(role="public")).get("/tasks/health").status_code == 404


def test_role_from_env(monkeypatch):
    monkeypatch.setenv("APP_ROLE", "worker")
    assert TestClient(create_app()).get("/tasks/health").status_code == 200


def test_correlation_id_echoed():
    client = TestClient(create_app(role="public"))
    response = client.get("/health", headers={CORRELATION_ID_HEADER: "cid-123"})
    assert response.headers[CORRELATION_ID_HEADER] == "cid-123"


def test_correlation_id_generated():
    response = TestClient(create_app(role="public")).get("/health")
    assert response.headers[CORRELATION_ID_HEADER]


def test_unknown_role_rejected():
    import pytest

    with pytest.raises(ValueError, match="APP_ROLE"):
        create_app(role="admin")  # type: ignore[arg-type]
