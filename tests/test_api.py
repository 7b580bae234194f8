"""HTTP-level tests for routers, auth dependencies, error handlers and maintenance mode."""

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from common.utils.cache import TTLCache
from common.utils.rate_limit import RateLimiter
from marketplace import dependencies
from marketplace.error_handlers import register_error_handlers
from marketplace.middleware import AuthMiddleware, MaintenanceModeMiddleware
from marketplace.routers import auth_router, fraud_router, otp_router
from marketplace.services.fraud import FraudRule
from tests.fakes import STRONG_PASSWORD


def build_app(flag_loader=None) -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)

    async def maintenance_off():
        return False

    app.add_middleware(
        MaintenanceModeMiddleware,
        flag_loader=flag_loader or maintenance_off,
        cache=TTLCache(ttl_seconds=60),
        bypass_prefixes=("/health",),
    )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(otp_router, prefix="/api/v1")
    app.include_router(fraud_router, prefix="/api/v1")
    return app


@pytest.fixture
def wired_services(
    monkeypatch, store, password_hasher, token_manager, runner, audit_service,
    notification_service, email_service, sms_service, otp_service, fraud_service,
):
    services = {
        "_credential_store": store,
        "_password_hasher": password_hasher,
        "_token_manager": token_manager,
        "_auth_middleware": AuthMiddleware(token_manager),
        "_task_runner": runner,
        "_audit_service": audit_service,
        "_notification_service": notification_service,
        "_email_service": email_service,
        "_sms_service": sms_service,
        "_otp_service": otp_service,
        "_fraud_service": fraud_service,
        "_auth_rate_limiter": RateLimiter(max_requests=100, window_seconds=900),
        "_otp_rate_limiter": RateLimiter(max_requests=100, window_seconds=900),
    }
    for name, service in services.items():
        monkeypatch.setattr(dependencies, name, service)
    return services


@pytest_asyncio.fixture
async def client(wired_services, runner):
    transport = httpx.ASGITransport(app=build_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await runner.drain()


async def bearer_for(store, token_manager, email, role_name):
    role = await store.find_role_by_name(role_name)
    user = await store.create_user(email=email, name=role_name.title(), role=role)
    tokens = await token_manager.issue_token_pair(user)
    return str(user["_id"]), {"Authorization": f"Bearer {tokens['accessToken']}"}


# ─────────────────────────────────────────────────────────────────
# Auth routes
# ─────────────────────────────────────────────────────────────────


class TestAuthRoutes:
    @pytest.mark.asyncio
    async def test_register_then_me(self, client):
        response = await client.post("/api/v1/auth/register", json={
            "email": "anna@example.com",
            "password": STRONG_PASSWORD,
            "name": "Anna",
            "role": "seller",
        })

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert "passwordHash" not in body["data"]["user"]

        access = body["data"]["tokens"]["accessToken"]
        me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {access}"})
        assert me.status_code == 200
        assert me.json()["data"]["email"] == "anna@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_registration_is_conflict(self, client, registered_user):
        response = await client.post("/api/v1/auth/register", json={
            "email": "anna@example.com",
            "password": STRONG_PASSWORD,
            "name": "Anna Again",
        })

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_EXISTS"

    @pytest.mark.asyncio
    async def test_validation_error_envelope(self, client):
        response = await client.post("/api/v1/auth/register", json={
            "email": "anna@example.com",
            "password": "weak",
            "name": "A",
            "role": "admin",
        })

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        fields = {e["field"] for e in error["errors"]}
        assert {"password", "name", "role"} <= fields

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, registered_user):
        response = await client.post("/api/v1/auth/login", json={
            "email": "anna@example.com",
            "password": "Wr0ngPassword",
        })

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    @pytest.mark.asyncio
    async def test_me_without_token(self, client):
        response = await client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTH_REQUIRED"

    @pytest.mark.asyncio
    async def test_me_with_garbage_token(self, client):
        response = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_forgot_password_for_unknown_email(self, client):
        response = await client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert response.json()["success"] is True


# ─────────────────────────────────────────────────────────────────
# OTP routes
# ─────────────────────────────────────────────────────────────────


class TestOtpRoutes:
    @pytest.mark.asyncio
    async def test_cooldown_sets_retry_after(self, client):
        first = await client.post("/api/v1/otp/send", json={"phone": "+46701234567"})
        second = await client.post("/api/v1/otp/send", json={"phone": "+46701234567"})

        assert first.status_code == 200
        assert first.json()["data"]["expiresIn"] == 300
        assert second.status_code == 429
        assert second.json()["error"]["code"] == "OTP_COOLDOWN"
        assert int(second.headers["Retry-After"]) >= 1

    @pytest.mark.asyncio
    async def test_wrong_code(self, client):
        await client.post("/api/v1/otp/send", json={"phone": "+46701234567"})
        response = await client.post("/api/v1/otp/verify", json={"phone": "+46701234567", "otp": "00000000"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_OTP"

    @pytest.mark.asyncio
    async def test_password_reset_resend_skips_cooldown(self, client, registered_user, email_service):
        first = await client.post("/api/v1/otp/password-reset/send", json={"email": "anna@example.com"})
        resent = await client.post("/api/v1/otp/password-reset/resend", json={"email": "anna@example.com"})

        assert first.status_code == 200
        assert resent.status_code == 200
        assert resent.json()["data"]["expiresIn"] == 300
        assert email_service.send_otp_email.await_count == 2

        code = email_service.send_otp_email.await_args.args[1]
        verified = await client.post(
            "/api/v1/otp/password-reset/verify",
            json={"email": "anna@example.com", "otp": code},
        )
        assert verified.status_code == 200
        assert "resetToken" in verified.json()["data"]


# ─────────────────────────────────────────────────────────────────
# Per-IP rate limits
# ─────────────────────────────────────────────────────────────────


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_credential_endpoints_share_a_per_ip_budget(self, client, monkeypatch):
        monkeypatch.setattr(dependencies, "_auth_rate_limiter", RateLimiter(max_requests=2, window_seconds=900))
        credentials = {"email": "anna@example.com", "password": "Wr0ngPassword"}

        first = await client.post("/api/v1/auth/login", json=credentials)
        second = await client.post("/api/v1/auth/forgot-password", json={"email": "anna@example.com"})
        third = await client.post("/api/v1/auth/login", json=credentials)

        assert first.status_code == 401
        assert second.status_code == 200
        assert third.status_code == 429
        error = third.json()["error"]
        assert error["code"] == "AUTH_RATE_LIMIT_EXCEEDED"
        assert error["details"]["retryAfter"] == 900
        assert third.headers["Retry-After"] == "900"

    @pytest.mark.asyncio
    async def test_budget_is_per_client_ip(self, client, monkeypatch):
        monkeypatch.setattr(dependencies, "_auth_rate_limiter", RateLimiter(max_requests=1, window_seconds=900))
        body = {"email": "ghost@example.com"}

        await client.post("/api/v1/auth/forgot-password", json=body, headers={"X-Forwarded-For": "10.0.0.1"})
        limited = await client.post("/api/v1/auth/forgot-password", json=body, headers={"X-Forwarded-For": "10.0.0.1"})
        other = await client.post("/api/v1/auth/forgot-password", json=body, headers={"X-Forwarded-For": "10.0.0.2"})

        assert limited.status_code == 429
        assert other.status_code == 200

    @pytest.mark.asyncio
    async def test_refresh_is_not_limited(self, client, monkeypatch):
        monkeypatch.setattr(dependencies, "_auth_rate_limiter", RateLimiter(max_requests=1, window_seconds=900))

        for _ in range(3):
            response = await client.post("/api/v1/auth/refresh", json={"refreshToken": "garbage"})
            assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_otp_sends_are_limited(self, client, monkeypatch):
        monkeypatch.setattr(dependencies, "_otp_rate_limiter", RateLimiter(max_requests=2, window_seconds=60))

        await client.post("/api/v1/otp/send", json={"phone": "+46701234567"})
        await client.post("/api/v1/otp/send", json={"phone": "+46709999999"})
        limited = await client.post("/api/v1/otp/send", json={"phone": "+46708888888"})

        assert limited.status_code == 429
        assert limited.json()["error"]["code"] == "OTP_RATE_LIMIT_EXCEEDED"


# ─────────────────────────────────────────────────────────────────
# Fraud routes
# ─────────────────────────────────────────────────────────────────


class TestFraudRoutes:
    @pytest.mark.asyncio
    async def test_buyer_is_forbidden(self, client, store, token_manager):
        _, headers = await bearer_for(store, token_manager, "buyer@example.com", "buyer")

        response = await client.get("/api/v1/fraud/logs", headers=headers)

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    @pytest.mark.asyncio
    async def test_moderator_lists_and_reviews(self, client, store, token_manager):
        moderator_id, headers = await bearer_for(store, token_manager, "mod@example.com", "moderator")
        suspect_id, _ = await bearer_for(store, token_manager, "suspect@example.com", "seller")
        log = await store.insert_fraud_log(suspect_id, FraudRule.MANY_DEVICES, {"deviceCount": 6}, 30)

        listing = await client.get("/api/v1/fraud/logs", params={"type": "MANY_DEVICES"}, headers=headers)
        assert listing.status_code == 200
        body = listing.json()
        assert body["pagination"]["total"] == 1
        assert body["data"][0]["user"]["email"] == "suspect@example.com"

        review = await client.patch(f"/api/v1/fraud/logs/{log['_id']}/review", headers=headers)
        assert review.status_code == 200
        assert review.json()["data"]["reviewedBy"] == moderator_id

    @pytest.mark.asyncio
    async def test_review_unknown_log(self, client, store, token_manager):
        _, headers = await bearer_for(store, token_manager, "admin@example.com", "admin")

        response = await client.patch("/api/v1/fraud/logs/not-an-id/review", headers=headers)

        assert response.status_code == 404


# ─────────────────────────────────────────────────────────────────
# Maintenance mode
# ─────────────────────────────────────────────────────────────────


class TestMaintenanceMode:
    @pytest.mark.asyncio
    async def test_enabled_flag_blocks_api(self, wired_services):
        async def maintenance_on():
            return True

        transport = httpx.ASGITransport(app=build_app(maintenance_on))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            blocked = await c.post("/api/v1/auth/login", json={"email": "a@b.se", "password": "x"})
            health = await c.get("/health")

        assert blocked.status_code == 503
        assert blocked.json()["error"]["code"] == "MAINTENANCE_MODE"
        assert blocked.headers["Retry-After"] == "60"
        assert health.status_code == 200

    @pytest.mark.asyncio
    async def test_failing_flag_loader_uses_default(self, wired_services):
        async def broken():
            raise RuntimeError("store down")

        transport = httpx.ASGITransport(app=build_app(broken))
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            response = await c.post("/api/v1/auth/forgot-password", json={"email": "a@b.se"})

        assert response.status_code == 200
