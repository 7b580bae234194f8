"""Tests for the email and SMS delivery adapters."""

from functools import partial
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from marketplace.services.messaging import EmailService, SmsService

RealAsyncClient = httpx.AsyncClient


def mock_http(handler):
    """Patch httpx.AsyncClient so every request goes to ``handler``."""
    return patch(
        "httpx.AsyncClient",
        partial(RealAsyncClient, transport=httpx.MockTransport(handler)),
    )


# ─────────────────────────────────────────────────────────────────
# SMS
# ─────────────────────────────────────────────────────────────────


class TestSmsService:
    @pytest.mark.asyncio
    async def test_console_mode(self):
        result = await SmsService().send_otp("+46701234567", "123456", 5)
        assert result == {"success": True, "mode": "console"}

    def test_twilio_without_credentials_falls_back(self):
        assert SmsService(mode="twilio").mode == "console"

    @pytest.mark.asyncio
    async def test_twilio_success(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = request.content.decode()
            return httpx.Response(201, json={"sid": "SM123"})

        service = SmsService(mode="twilio", account_sid="AC1", auth_token="t", from_number="+1555")
        with mock_http(handler):
            result = await service.send_otp("+46701234567", "123456", 5)

        assert result == {"success": True, "mode": "twilio", "messageId": "SM123"}
        assert "/Accounts/AC1/Messages.json" in seen["url"]
        assert "123456" in seen["body"]

    @pytest.mark.asyncio
    async def test_twilio_error_is_returned(self):
        def handler(request):
            return httpx.Response(400, json={"message": "Invalid To number"})

        service = SmsService(mode="twilio", account_sid="AC1", auth_token="t", from_number="+1555")
        with mock_http(handler):
            result = await service.send_sms("+46701234567", "hi")

        assert result == {"success": False, "error": "Invalid To number"}


# ─────────────────────────────────────────────────────────────────
# Email
# ─────────────────────────────────────────────────────────────────


class TestEmailService:
    @pytest.mark.asyncio
    async def test_console_mode(self):
        result = await EmailService().send_otp_email("anna@example.com", "123456", 5)
        assert result["success"] is True
        assert result["mode"] == "console"

    @pytest.mark.asyncio
    async def test_display_name_is_escaped_in_html(self):
        service = EmailService()
        name = '<img src=x onerror="alert(1)">'

        with patch.object(service, "send_email", new=AsyncMock(return_value={"success": True})) as send:
            await service.send_welcome_email("anna@example.com", name)
            await service.send_password_reset_email("anna@example.com", "tok", name=name)

        for call in send.await_args_list:
            to, subject, html, text = call.args
            assert "<img" not in html
            assert "&lt;img src=x onerror=&quot;alert(1)&quot;&gt;" in html
            assert name in text

    def test_resend_without_key_falls_back(self):
        assert EmailService(mode="resend").mode == "console"

    @pytest.mark.asyncio
    async def test_resend_failure(self):
        def handler(request):
            return httpx.Response(422, json={"message": "Invalid from address"})

        service = EmailService(mode="resend", resend_api_key="re_test")
        with mock_http(handler):
            result = await service.send_welcome_email("anna@example.com", "Anna")

        assert result == {"success": False, "error": "Invalid from address"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "port, use_tls, start_tls",
        [(465, True, False), (587, False, True)],
    )
    async def test_smtp_tls_by_port(self, port, use_tls, start_tls):
        service = EmailService(mode="smtp", smtp_host="mail.local", smtp_port=port)

        with patch("aiosmtplib.send", new=AsyncMock()) as send:
            result = await service.send_otp_email("anna@example.com", "123456", 5)

        assert result["success"] is True
        kwargs = send.await_args.kwargs
        assert kwargs["use_tls"] is use_tls
        assert kwargs["start_tls"] is start_tls

    @pytest.mark.asyncio
    async def test_smtp_without_tls(self):
        service = EmailService(mode="smtp", smtp_host="mail.local", smtp_port=25, smtp_use_tls=False)

        with patch("aiosmtplib.send", new=AsyncMock()) as send:
            await service.send_otp_email("anna@example.com", "123456", 5)

        assert send.await_args.kwargs["use_tls"] is False
        assert send.await_args.kwargs["start_tls"] is False
