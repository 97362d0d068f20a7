"""Tests for per-client API rate limiting."""

import pytest
from fastapi.testclient import TestClient

from clinicbook.api.middleware.rate_limit_middleware import RateLimitMiddleware


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimitMiddleware(app=None, public_per_minute=2, private_per_minute=3, clock=clock)


class TestPolicyResolution:
    def test_routes(self, limiter):
        assert limiter.resolve_policy("/api/v1/public/bookings").name == "publicApi"
        assert limiter.resolve_policy("/api/v1/public/clinics/x/slots").name == "publicApi"
        assert limiter.resolve_policy("/api/v1/dashboard/patients/").name == "privateApi"
        assert limiter.resolve_policy("/health/") is None
        assert limiter.resolve_policy("/") is None


class TestFixedWindow:
    def test_budget_then_refusal(self, limiter):
        policy = limiter.public_policy
        first = limiter.consume("publicApi:1.2.3.4", policy)
        second = limiter.consume("publicApi:1.2.3.4", policy)
        third = limiter.consume("publicApi:1.2.3.4", policy)

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert third.allowed is False
        assert third.retry_after_seconds == 60

    def test_window_resets(self, limiter, clock):
        policy = limiter.public_policy
        for _ in range(3):
            limiter.consume("publicApi:1.2.3.4", policy)

        clock.now += 60
        assert limiter.consume("publicApi:1.2.3.4", policy).allowed is True

    def test_clients_are_independent(self, limiter):
        policy = limiter.public_policy
        for _ in range(3):
            limiter.consume("publicApi:1.2.3.4", policy)

        assert limiter.consume("publicApi:5.6.7.8", policy).allowed is True

    def test_headers(self, limiter, clock):
        result = limiter.consume("privateApi:1.2.3.4", limiter.private_policy)

        assert result.headers() == {
            "X-RateLimit-Policy": "privateApi",
            "X-RateLimit-Limit": "3",
            "X-RateLimit-Remaining": "2",
            "X-RateLimit-Reset": "1060",
            "Retry-After": "60",
        }


def build_client(db_session, confirmation_enqueuer, **limits):
    from clinicbook.config.database import get_db
    from clinicbook.main import create_app
    from clinicbook.services.booking.idempotency_store import InMemoryIdempotencyStore

    app = create_app(
        idempotency_store=InMemoryIdempotencyStore(),
        confirmation_enqueuer=confirmation_enqueuer,
        create_schema=False,
        **limits,
    )
    app.dependency_overrides[get_db] = lambda: db_session
    return TestClient(app)


class TestMiddlewareOverHttp:
    @pytest.fixture
    def limited_client(self, db_session, confirmation_enqueuer):
        return build_client(db_session, confirmation_enqueuer, public_rate_limit=2)

    def test_public_limit(self, limited_client, clinic):
        url = f"/api/v1/public/clinics/{clinic.slug}"
        headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}

        assert limited_client.get(url, headers=headers).status_code == 200
        assert limited_client.get(url, headers=headers).headers["X-RateLimit-Remaining"] == "0"

        refused = limited_client.get(url, headers=headers)
        assert refused.status_code == 429
        assert refused.json()["code"] == "RATE_LIMITED"
        assert refused.headers["X-RateLimit-Policy"] == "publicApi"
        assert int(refused.headers["Retry-After"]) >= 1

        other_client = limited_client.get(url, headers={"X-Forwarded-For": "198.51.100.2"})
        assert other_client.status_code == 200

    def test_root_is_not_limited(self, limited_client):
        for _ in range(4):
            response = limited_client.get("/")
            assert response.status_code == 200
            assert "X-RateLimit-Policy" not in response.headers

    def test_zero_limit_refuses_every_request(self, db_session, confirmation_enqueuer, clinic):
        client = build_client(db_session, confirmation_enqueuer, public_rate_limit=0)

        response = client.get(f"/api/v1/public/clinics/{clinic.slug}")

        assert response.status_code == 429
        assert response.headers["X-RateLimit-Limit"] == "0"
