"""Integration tests for the request-gating middleware."""

from __future__ import annotations

import re
import time

import pytest
from fastapi.testclient import TestClient

from nerix_gateway.adapters.rate_limit.base import AbstractCounterStore, CounterEntry
from nerix_gateway.core import middleware
from nerix_gateway.core.app_factory import create_app
from nerix_gateway.core.config import settings
from nerix_gateway.core.errors import CounterStoreError
from nerix_gateway.core.rate_limit import LimiterTier, RateLimitEvaluator, build_tiers


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


def support_form(**overrides) -> dict:
    form = {
        "name": "Ada Lovelace",
        "email": "ada@nerix.io",
        "subject": "Question about the airdrop",
        "message": "How do I verify my social accounts for the campaign?",
        "type": "support",
        "timestamp": int(time.time() * 1000) - 10_000,
    }
    form.update(overrides)
    return form


class DownStore(AbstractCounterStore):
    async def increment(self, key: str, window_seconds: int) -> CounterEntry:
        raise CounterStoreError(code="RATE_LIMIT_UNAVAILABLE", message="down")

    async def get(self, key: str) -> CounterEntry | None:
        return None

    async def reset(self, key: str) -> None:
        return None

    async def ping(self) -> bool:
        return False


class TestRateLimiting:
    def test_support_form_scenario(self, client: TestClient) -> None:
        remaining = []
        for _ in range(5):
            resp = client.post("/api/support", json=support_form())
            assert resp.status_code == 200
            remaining.append(int(resp.headers["X-RateLimit-Remaining"]))
            assert resp.headers["X-RateLimit-Limit"] == "5"

        assert remaining == [4, 3, 2, 1, 0]

        resp = client.post("/api/support", json=support_form())
        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "Rate limit exceeded"
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["details"]["limit"] == 5
        assert body["details"]["remaining"] == 0
        assert 0 < body["details"]["retryAfter"] <= 60
        assert resp.headers["Retry-After"] == str(body["details"]["retryAfter"])
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        assert resp.headers["X-RateLimit-Reset"] == str(body["details"]["resetTime"])

    def test_denied_request_never_reaches_route(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)

        assert client.post("/api/support", json=support_form()).status_code == 200
        # Invalid payload would be a 400 if it reached the route
        assert client.post("/api/support", json={}).status_code == 429

    def test_get_and_post_use_separate_tiers(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)

        client.post("/api/support", json=support_form())
        assert client.post("/api/support", json=support_form()).status_code == 429

        resp = client.get("/api/support")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "300"

    def test_clients_are_limited_independently(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)

        a = {"X-Forwarded-For": "10.0.0.1"}
        b = {"X-Forwarded-For": "10.0.0.2"}
        assert client.post("/api/support", json=support_form(), headers=a).status_code == 200
        assert client.post("/api/support", json=support_form(), headers=a).status_code == 429
        assert client.post("/api/support", json=support_form(), headers=b).status_code == 200

    def test_rotating_unknown_api_keys_share_one_bucket(self, client: TestClient) -> None:
        statuses = [
            client.post("/api/support", json=support_form(), headers={"X-API-Key": f"junk-{i}"}).status_code
            for i in range(8)
        ]

        assert statuses == [200] * 5 + [429] * 3

    def test_listed_api_key_gets_its_own_bucket(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)
        monkeypatch.setattr(settings.rate_limit, "api_keys", "partner-key")

        assert client.post("/api/support", json=support_form()).status_code == 200
        assert client.post("/api/support", json=support_form()).status_code == 429

        keyed = {"X-API-Key": "partner-key"}
        assert client.post("/api/support", json=support_form(), headers=keyed).status_code == 200
        assert client.post("/api/support", json=support_form(), headers=keyed).status_code == 429

    def test_disabled_rate_limiting(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "enabled", False)
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)

        for _ in range(3):
            resp = client.post("/api/support", json=support_form())
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_exempt_auth_routes_are_not_counted(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "moderate_requests", 1)

        for _ in range(3):
            resp = client.get("/api/auth/nextauth/session")
            assert resp.status_code == 404
            assert "X-RateLimit-Limit" not in resp.headers

    def test_fail_closed_store_outage_returns_503(self, client: TestClient, monkeypatch) -> None:
        evaluator = RateLimitEvaluator(
            store=DownStore(),
            tiers=build_tiers(settings.rate_limit),
            fail_open=False,
        )
        monkeypatch.setattr(middleware, "get_rate_limit_evaluator", lambda: evaluator)

        resp = client.get("/api/support")
        assert resp.status_code == 503
        body = resp.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMIT_UNAVAILABLE"

    def test_fail_open_store_outage_admits_request(self, client: TestClient, monkeypatch) -> None:
        evaluator = RateLimitEvaluator(
            store=DownStore(),
            tiers={**build_tiers(settings.rate_limit), "moderate": LimiterTier("moderate", 1, 60)},
        )
        monkeypatch.setattr(middleware, "get_rate_limit_evaluator", lambda: evaluator)

        for _ in range(3):
            assert client.get("/api/unknown").status_code == 404


class TestCors:
    def test_preflight_short_circuits(self, client: TestClient) -> None:
        resp = client.options(
            "/api/support",
            headers={"Origin": "https://app.nerix.io", "Access-Control-Request-Method": "POST"},
        )

        assert resp.status_code == 200
        assert resp.content == b""
        assert resp.headers["Access-Control-Allow-Origin"] == "https://app.nerix.io"
        assert resp.headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"
        assert resp.headers["Access-Control-Allow-Headers"] == (
            "Content-Type, Authorization, X-API-Key, X-Requested-With"
        )
        assert resp.headers["Access-Control-Allow-Credentials"] == "true"
        assert resp.headers["Access-Control-Max-Age"] == "86400"
        assert resp.headers["Vary"] == "Origin"
        assert "X-Trace-Id" not in resp.headers

    def test_preflight_ignores_exhausted_budget(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings.rate_limit, "restrictive_requests", 1)
        client.post("/api/support", json=support_form())
        assert client.post("/api/support", json=support_form()).status_code == 429

        assert client.options("/api/support").status_code == 200

    def test_preflight_on_unknown_api_path(self, client: TestClient) -> None:
        assert client.options("/api/does-not-exist").status_code == 200

    def test_unlisted_origin_gets_default_origin(self, client: TestClient) -> None:
        resp = client.get("/api/support", headers={"Origin": "https://evil.example"})

        assert resp.headers["Access-Control-Allow-Origin"] == "https://nerix.io"


class TestTraceId:
    def test_api_responses_carry_fresh_trace_ids(self, client: TestClient) -> None:
        first = client.get("/api/support")
        second = client.get("/api/support")

        assert first.headers["X-Trace-Id"]
        assert first.headers["X-Trace-Id"] != second.headers["X-Trace-Id"]
        assert first.json()["meta"]["traceId"] == first.headers["X-Trace-Id"]

    def test_page_responses_have_no_trace_id(self, client: TestClient) -> None:
        assert "X-Trace-Id" not in client.get("/").headers


class TestContentSecurityPolicy:
    def test_csp_nonce_matches_header(self, client: TestClient) -> None:
        resp = client.get("/")
        nonce = resp.headers["X-Nonce"]
        csp = resp.headers["Content-Security-Policy"]

        assert re.search(rf"script-src 'self' 'nonce-{re.escape(nonce)}' 'strict-dynamic' https://vercel.live", csp)
        assert f"style-src 'self' 'nonce-{nonce}'" in csp
        assert csp.startswith("default-src 'self'; ")
        assert f'nonce="{nonce}"' in resp.text

    def test_nonce_differs_between_requests(self, client: TestClient) -> None:
        first = client.get("/").headers["X-Nonce"]
        second = client.get("/").headers["X-Nonce"]

        assert first != second

    def test_api_paths_have_no_csp(self, client: TestClient) -> None:
        resp = client.get("/api/support")

        assert "Content-Security-Policy" not in resp.headers
        assert "X-Nonce" not in resp.headers

    @pytest.mark.parametrize("path", ["/sw.js", "/favicon.ico", "/_next/static/chunk.js", "/_next/image"])
    def test_excluded_paths_are_untouched(self, client: TestClient, path: str) -> None:
        resp = client.get(path)

        assert "Content-Security-Policy" not in resp.headers
        assert "X-Nonce" not in resp.headers
        assert "X-Trace-Id" not in resp.headers

    @pytest.mark.parametrize("path", ["/docs", "/redoc", "/openapi.json"])
    def test_api_docs_bypass_csp(self, client: TestClient, path: str) -> None:
        resp = client.get(path)

        assert resp.status_code == 200
        assert "Content-Security-Policy" not in resp.headers
        assert "X-Nonce" not in resp.headers

    def test_unknown_pages_still_get_csp(self, client: TestClient) -> None:
        resp = client.get("/games/does-not-exist")

        assert resp.status_code == 404
        assert "Content-Security-Policy" in resp.headers
