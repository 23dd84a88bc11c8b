import pytest
from fastapi.testclient import TestClient

from nlu_studio.server.config import Settings
from nlu_studio.server.main import create_application
from nlu_studio.server.middleware import POWERED_BY, FixedWindowRateLimiter
from nlu_studio.server.monitoring import RequestMonitor


def make_client(tmp_path, **overrides):
    settings = Settings(model_dir=str(tmp_path / "models"), **overrides)
    return TestClient(create_application(settings), raise_server_exceptions=False)


def test_powered_by_header(tmp_path):
    response = make_client(tmp_path).get("/info")
    assert response.headers["X-Powered-By"] == POWERED_BY


def test_auth_rejects_missing_or_wrong_token(tmp_path):
    client = make_client(tmp_path, auth_token="user-token", admin_token="admin-token")

    assert client.get("/info").status_code == 401
    response = client.get("/info", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "UNAUTHORIZED"


@pytest.mark.parametrize("token", ["user-token", "admin-token"])
def test_auth_accepts_both_tokens(tmp_path, token):
    client = make_client(tmp_path, auth_token="user-token", admin_token="admin-token")
    response = client.get("/info", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200


def test_cors_preflight_answered_before_auth(tmp_path):
    client = make_client(tmp_path, auth_token="user-token")
    response = client.options(
        "/info",
        headers={"Origin": "http://studio.example", "Access-Control-Request-Method": "GET"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_cors_headers_on_rejected_requests(tmp_path):
    client = make_client(tmp_path, auth_token="user-token")
    response = client.get("/info", headers={"Origin": "http://studio.example"})
    assert response.status_code == 401
    assert response.headers["access-control-allow-origin"] == "*"


def test_rate_limit(tmp_path):
    client = make_client(tmp_path, limit=2, limit_window="1m")

    assert client.get("/info").status_code == 200
    assert client.get("/info").status_code == 200
    response = client.get("/info")
    assert response.status_code == 429
    assert response.json()["error"] == "Too many requests, please slow down"
    assert int(response.headers["Retry-After"]) >= 1


def test_body_limit(tmp_path):
    client = make_client(tmp_path, body_limit_kb=1)
    response = client.post("/predict/some.en.0", json={"sentence": "x" * 2048})
    assert response.status_code == 413
    assert response.json()["error_code"] == "PAYLOAD_TOO_LARGE"


def test_body_limit_counts_chunked_bodies(tmp_path):
    client = make_client(tmp_path, body_limit_kb=1)

    def chunks():
        yield b'{"sentence": "'
        for _ in range(8):
            yield b"x" * 512
        yield b'"}'

    response = client.post("/predict/some.en.0", content=chunks(), headers={"Content-Type": "application/json"})
    assert response.status_code == 413
    assert response.json()["error_code"] == "PAYLOAD_TOO_LARGE"


def test_small_chunked_body_reaches_route(tmp_path):
    client = make_client(tmp_path, body_limit_kb=1)

    def chunks():
        yield b'{"sentence": '
        yield b'"hello"}'

    response = client.post("/predict/some.en.0", content=chunks(), headers={"Content-Type": "application/json"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "MODEL_NOT_FOUND"


def test_unexpected_errors_are_wrapped(tmp_path):
    client = make_client(tmp_path)

    @client.app.get("/boom")
    async def boom():
        raise RuntimeError("kaput")

    response = client.get("/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "INTERNAL_SERVER_ERROR"
    assert body["detail"] is None


def test_requests_are_monitored(tmp_path):
    client = make_client(tmp_path)
    client.get("/info")
    client.get("/train/missing.en.0")

    stats = client.app.state.container.monitor.snapshot()
    assert stats["requests"] == 2
    assert stats["errors"] == 0


def test_fixed_window_rate_limiter(monkeypatch):
    now = [100.0]
    monkeypatch.setattr("nlu_studio.server.middleware.time.monotonic", lambda: now[0])
    limiter = FixedWindowRateLimiter(limit=1, window=10)

    assert limiter.allow("a") == (True, 0.0)
    allowed, retry_after = limiter.allow("a")
    assert not allowed
    assert retry_after == pytest.approx(10.0)
    assert limiter.allow("b")[0]

    now[0] += 10
    assert limiter.allow("a")[0]


def test_monitor_snapshot():
    monitor = RequestMonitor()
    monitor.observe("GET", 200, 0.01)
    monitor.observe("POST", 500, 0.03)

    stats = monitor.snapshot()
    assert stats["requests"] == 2
    assert stats["errors"] == 1
    assert stats["avg_latency_ms"] == pytest.approx(20.0)
