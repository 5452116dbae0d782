"""Tests for the limiter decision API routes.

The app is built through ``create_app`` with a limiter driven by a mock
clock, so window arithmetic is deterministic. The default policy guarding
``/v1/limits/*`` is set high in conftest and does not interfere.
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from throttle.adapters.rate_limit.in_memory import InMemoryFixedWindowRateLimiter
from throttle.core.app_factory import create_app
from throttle.core.config import settings


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=0.0)


@pytest.fixture
def limiter(clock: Mock) -> InMemoryFixedWindowRateLimiter:
    return InMemoryFixedWindowRateLimiter(clock=clock, idle_windows=1, sweep_interval_ms=0)


@pytest.fixture
def client(limiter: InMemoryFixedWindowRateLimiter) -> TestClient:
    return TestClient(create_app(rate_limiter=limiter))


def _check(client: TestClient, key: str = "ip:1.2.3.4", limit: int = 3, window_ms: int = 1000):
    return client.post(
        "/v1/limits/check",
        json={"key": key, "limit": limit, "window_ms": window_ms},
    )


class TestCheckEndpoint:
    """POST /v1/limits/check."""

    def test_example_scenario(self, client: TestClient, clock: Mock) -> None:
        for _ in range(3):
            resp = _check(client)
            assert resp.status_code == 200
            assert resp.json()["allowed"] is True
            assert resp.json()["retry_after_ms"] is None

        clock.return_value = 100.0
        denied = _check(client)
        assert denied.status_code == 200
        assert denied.json()["allowed"] is False
        assert denied.json()["retry_after_ms"] == 900
        assert denied.json()["remaining"] == 0

        clock.return_value = 1050.0
        assert _check(client).json()["allowed"] is True

    def test_keys_are_independent(self, client: TestClient) -> None:
        assert _check(client, key="a", limit=1).json()["allowed"] is True
        assert _check(client, key="a", limit=1).json()["allowed"] is False
        assert _check(client, key="b", limit=1).json()["allowed"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"key": "", "limit": 1, "window_ms": 1000},
            {"key": "k", "limit": 0, "window_ms": 1000},
            {"key": "k", "limit": 1, "window_ms": -5},
            {"key": "k", "limit": 1},
        ],
    )
    def test_invalid_payload_is_rejected(self, client: TestClient, payload: dict) -> None:
        resp = client.post("/v1/limits/check", json=payload)

        assert resp.status_code == 422

    def test_cannot_spend_guarded_route_budget(
        self,
        client: TestClient,
        limiter: InMemoryFixedWindowRateLimiter,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(settings.app, "rate_limit_requests", 10)
        victim = "default:client:victim"

        for _ in range(4):
            _check(client, key=victim, limit=100)
        _check(client, key="default:ip:testclient", limit=100)

        assert limiter.peek(victim) is None
        assert limiter.peek(f"api:{victim}").count == 4
        # Only the test client's own guarded requests count against it.
        assert limiter.peek("default:ip:testclient").count == 5
        assert client.get("/v1/limits/buckets/" + victim).json()["count"] == 4

    def test_limiter_value_error_maps_to_400(
        self, client: TestClient, limiter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        # The guarding policy shares this limiter; keep it out of the way.
        monkeypatch.setattr(settings.app, "rate_limit_enabled", False)
        limiter.check_and_consume = Mock(side_effect=ValueError("limit must be >= 1"))

        resp = _check(client)

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_limit_request"


class TestBucketEndpoint:
    """GET /v1/limits/buckets/{key}."""

    def test_returns_snapshot_without_consuming(self, client: TestClient) -> None:
        _check(client, key="user:42")

        first = client.get("/v1/limits/buckets/user:42")
        second = client.get("/v1/limits/buckets/user:42")

        assert first.status_code == 200
        assert first.json() == second.json()
        assert first.json()["count"] == 1
        assert first.json()["window_ms"] == 1000

    def test_keys_with_slashes(self, client: TestClient) -> None:
        _check(client, key="route:/v1/bookings")

        resp = client.get("/v1/limits/buckets/route:/v1/bookings")

        assert resp.status_code == 200
        assert resp.json()["key"] == "route:/v1/bookings"

    def test_unknown_key_returns_404(self, client: TestClient) -> None:
        resp = client.get("/v1/limits/buckets/never-seen")

        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "bucket_not_found"
        assert "never-seen" not in resp.text


class TestStatsAndSweep:
    """GET /v1/limits/stats and POST /v1/limits/sweep."""

    def test_stats_count_entries(self, client: TestClient) -> None:
        _check(client, key="a")
        _check(client, key="b")

        stats = client.get("/v1/limits/stats").json()

        # a, b and the default-policy bucket of the test client itself
        assert stats["entries"] == 3
        assert stats["idle_windows"] == 1

    def test_sweep_evicts_idle_buckets(self, client: TestClient, clock: Mock) -> None:
        _check(client, key="short", window_ms=100)

        clock.return_value = 500.0
        resp = client.post("/v1/limits/sweep")

        assert resp.status_code == 200
        assert resp.json()["evicted"] == 1
        assert client.get("/v1/limits/buckets/short").status_code == 404


def test_limits_routes_are_guarded_by_default_policy(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_requests", 2)

    assert client.get("/v1/limits/stats").status_code == 200
    assert client.get("/v1/limits/stats").status_code == 200
    blocked = client.get("/v1/limits/stats")

    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers
    assert blocked.headers.get("X-Request-ID")


def test_health_is_not_rate_limited(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_requests", 1)

    for _ in range(5):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


def test_openapi_documents_429(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    check_op = schema["paths"]["/v1/limits/check"]["post"]
    assert "429" in check_op["responses"]
    assert "429" not in schema["paths"]["/health"]["get"]["responses"]
    assert {"Limits", "Health"} <= {t["name"] for t in schema["tags"]}
