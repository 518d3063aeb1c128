"""
Tests for the Quota Middleware

Reference Documents:
- GUIDELINES: Fixed window counters for per-client rate limiting
- ANTI_PATTERN_ANALYSIS: §3.1 No bare except clauses
"""

from typing import Optional

import pytest
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from content_gateway.api.middleware.auth import IdentityMiddleware
from content_gateway.api.middleware.rate_limit import QuotaMiddleware
from content_gateway.core.exceptions import QuotaStoreUnavailableError
from content_gateway.services.quota import FixedWindowQuotaCounter, QuotaCounter, QuotaDecision
from tests.fakes import FakeIdentityVerifier, bearer


class StubQuotaCounter(QuotaCounter):
    """Returns a fixed decision (or raises) and records identities."""

    def __init__(self, decision: Optional[QuotaDecision] = None, error: Optional[Exception] = None):
        self.decision = decision or QuotaDecision(allowed=True, limit=10, count=1)
        self.error = error
        self.identities: list[str] = []

    async def check(self, identity: str) -> QuotaDecision:
        self.identities.append(identity)
        if self.error is not None:
            raise self.error
        return self.decision


def build_app(counter: QuotaCounter, with_identity: bool = True) -> FastAPI:
    app = FastAPI()

    @app.post("/api/generate-content")
    async def generate():
        return {"ok": True}

    @app.post("/api/upstream-limits")
    async def upstream_limits():
        return JSONResponse(
            {"ok": True},
            headers={"X-RateLimit-Limit": "1000", "X-RateLimit-Remaining": "999"},
        )

    @app.get("/health")
    async def health():
        return "OK"

    # Added innermost first: identity runs before quota
    app.add_middleware(QuotaMiddleware, quota_counter=counter)
    if with_identity:
        app.add_middleware(IdentityMiddleware, verifier=FakeIdentityVerifier())
    return app


class TestQuotaMiddleware:
    """Quota decisions mapped to responses."""

    def test_allowed_request_passes_with_headers(self):
        counter = StubQuotaCounter(QuotaDecision(allowed=True, limit=10, count=4))
        client = TestClient(build_app(counter))

        response = client.post("/api/generate-content", headers=bearer())

        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "10"
        assert response.headers["X-RateLimit-Remaining"] == "6"
        assert counter.identities == ["user_alice"]

    def test_handler_rate_limit_headers_are_kept(self):
        counter = StubQuotaCounter(QuotaDecision(allowed=True, limit=10, count=1))
        client = TestClient(build_app(counter))

        response = client.post("/api/upstream-limits", headers=bearer())

        assert response.status_code == 200
        assert response.headers.get_list("X-RateLimit-Limit") == ["1000"]
        assert response.headers.get_list("X-RateLimit-Remaining") == ["999"]

    def test_denied_request_is_429(self):
        counter = StubQuotaCounter(QuotaDecision(allowed=False, limit=10, count=11, retry_after=60))
        client = TestClient(build_app(counter))

        response = client.post("/api/generate-content", headers=bearer())

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert response.headers["Retry-After"] == "60"
        assert response.headers["X-RateLimit-Remaining"] == "0"
        assert response.json()["detail"] == "Too Many Requests"

    def test_degraded_decision_passes_without_headers(self):
        counter = StubQuotaCounter(QuotaDecision(allowed=True, limit=10, count=0, degraded=True))
        client = TestClient(build_app(counter))

        response = client.post("/api/generate-content", headers=bearer())

        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_fail_closed_store_is_503(self):
        counter = StubQuotaCounter(error=QuotaStoreUnavailableError())
        client = TestClient(build_app(counter))

        response = client.post("/api/generate-content", headers=bearer())

        assert response.status_code == 503
        assert response.json()["error_code"] == "QUOTA_STORE_UNAVAILABLE"

    def test_unauthenticated_request_never_counted(self):
        counter = StubQuotaCounter()
        client = TestClient(build_app(counter))

        response = client.post("/api/generate-content")

        assert response.status_code == 401
        assert counter.identities == []

    def test_anonymous_request_rejected_without_identity_stage(self):
        counter = StubQuotaCounter()
        client = TestClient(build_app(counter, with_identity=False))

        response = client.post("/api/generate-content")

        assert response.status_code == 401
        assert response.json()["error_code"] == "AUTHENTICATION_ERROR"
        assert counter.identities == []

    def test_unprotected_path_not_counted(self):
        counter = StubQuotaCounter()
        client = TestClient(build_app(counter, with_identity=False))

        assert client.get("/health").status_code == 200
        assert counter.identities == []


class TestQuotaMiddlewareWithRedis:
    """End to end over a fakeredis-backed fixed window counter."""

    def test_limit_enforced_per_identity(self, fake_redis, redis_inspector):
        counter = FixedWindowQuotaCounter(fake_redis, limit=3, window_seconds=60)

        with TestClient(build_app(counter)) as client:
            statuses = [
                client.post("/api/generate-content", headers=bearer("token-alice")).status_code
                for _ in range(4)
            ]
            bob = client.post("/api/generate-content", headers=bearer("token-bob"))

        assert statuses == [200, 200, 200, 429]
        assert bob.status_code == 200
        assert redis_inspector.get("ratelimit:user_alice") == "4"
        assert redis_inspector.get("ratelimit:user_bob") == "1"
