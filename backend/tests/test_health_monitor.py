from types import SimpleNamespace

import requests

import health_monitor


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_check_http_service_ok(monkeypatch):
    monkeypatch.setattr(health_monitor.requests, "get",
                        lambda url, timeout: SimpleNamespace(ok=True, status_code=200))

    ok, message = health_monitor.check_backend_api()

    assert ok is True
    assert message == "backend-api /health: OK (200)"


def test_check_http_service_failure(monkeypatch):
    monkeypatch.setattr(health_monitor.requests, "get",
                        lambda url, timeout: SimpleNamespace(ok=False, status_code=503))

    assert health_monitor.check_catalog() == (False, "backend-api /products: FAIL (503)")


def test_check_http_service_unreachable(monkeypatch):
    def refuse(url, timeout):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(health_monitor.requests, "get", refuse)

    ok, message = health_monitor.check_backend_api()
    assert ok is False
    assert "connection refused" in message


def test_check_database(db):
    ok, message = health_monitor.check_database()
    assert ok is True
    assert "sqlite" in message


def test_monitor_all_services():
    results = health_monitor.monitor_all_services({
        "up": lambda: (True, "up: OK"),
        "down": lambda: (False, "down: FAIL"),
    })
    assert results == {"up": True, "down": False}
