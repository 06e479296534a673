from fastapi.testclient import TestClient

from docqa.main import app


def test_health():
    # No context manager: startup (and the database) is not needed here.
    r = TestClient(app).get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert "X-Request-ID" in r.headers


def test_request_id_is_echoed():
    r = TestClient(app).get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
