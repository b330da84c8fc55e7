from fastapi.testclient import TestClient


def test_health_reports_store_and_rate_limit(client: TestClient):
    res = client.get("/health")

    assert res.status_code == 200
    data = res.json()
    assert data["status"] == "ok"
    assert data["orderStore"] == "memory"
    assert data["uptime"] >= 0
    assert set(data["rateLimit"]) == {"enabled", "ready", "backend"}


def test_unknown_route_uses_error_shape(client: TestClient):
    res = client.get("/api/payment/does-not-exist")

    assert res.status_code == 404
    assert res.json() == {"error": "Not Found", "message": "Not Found"}
