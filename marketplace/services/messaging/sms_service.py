"""
SMS delivery.

Console mode logs the message (development); twilio mode posts to the
Twilio Messages REST endpoint.
"""

import logging
from typing import Optional

import httpx

from common.utils.log_config import mask_phone
from config.messaging_config import DELIVERY_HTTP_TIMEOUT, SMS_MAX_LENGTH, TWILIO_MESSAGES_URL

logger = logging.getLogger(__name__)


class SmsService:
    """
    SMS sender with console and Twilio modes.
    """

    def __init__(
        self,
        mode: str = "console",
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
    ):
        self._mode = mode
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number

        if self._mode == "twilio" and not (account_sid and auth_token and from_number):
            logger.warning("Twilio credentials not configured, falling back to console mode")
            self._mode = "console"

        logger.info(f"SMS service initialized in {self._mode} mode")

    @property
    def mode(self) -> str:
        return self._mode

    async def send_sms(self, to: str, body: str) -> dict:
        """
        Send a text message.

        Args:
            to: Destination phone number (E.164)
            body: Message text, truncated to a single segment

        Returns:
            dict with success status and details
        """
        body = body[:SMS_MAX_LENGTH]

        if self._mode == "console":
            logger.info(f"SMS (console mode) to {mask_phone(to)}: {body}")
            return {"success": True, "mode": "console"}

        if self._mode == "twilio":
            return await self._send_twilio(to, body)

        logger.error(f"Unknown SMS mode: {self._mode}")
        return {"success": False, "error": f"Unknown SMS mode: {self._mode}"}

    async def send_otp(self, to: str, code: str, expiry_minutes: int) -> dict:
        return await self.send_sms(
            to,
            f"Your Marketplace verification code is {code}. It expires in {expiry_minutes} minutes.",
        )

    async def _send_twilio(self, to: str, body: str) -> dict:
        url = TWILIO_MESSAGES_URL.format(account_sid=self._account_sid)

        async with httpx.AsyncClient(timeout=DELIVERY_HTTP_TIMEOUT) as client:
            try:
                response = await client.post(
                    url,
                    auth=(self._account_sid, self._auth_token),
                    data={"To": to, "From": self._from_number, "Body": body},
                )
            except httpx.HTTPError as e:
                logger.error(f"Failed to send SMS via Twilio to {mask_phone(to)}: {e}")
                return {"success": False, "error": str(e)}

        if response.status_code in (200, 201):
            return {"success": True, "mode": "twilio", "messageId": response.json().get("sid")}

        error_msg = response.json().get("message", "Unknown error")
        logger.error(f"Twilio API error for {mask_phone(to)}: {error_msg}")
        return {"success": False, "error": error_msg}
