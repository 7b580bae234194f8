"""
FastAPI router for OTP endpoints.

Phone codes log a user in (creating the account on first use). Email
codes start a password reset.
"""

import logging

from fastapi import APIRouter, Depends

from common.utils import success_response
from marketplace.dependencies import get_otp_service, otp_rate_limit
from marketplace.schemas.otp import (
    EmailOtpRequest,
    EmailOtpVerifyRequest,
    PhoneOtpRequest,
    PhoneOtpVerifyRequest,
)
from marketplace.services.otp import EMAIL_CHANNEL, PHONE_CHANNEL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/otp", tags=["otp"])


@router.post("/send", dependencies=[Depends(otp_rate_limit)])
async def send_phone_otp(body: PhoneOtpRequest):
    """Send a login code by SMS."""
    result = await get_otp_service().send_otp(PHONE_CHANNEL, body.phone)
    return success_response({"expiresIn": result["expiresIn"]}, message=result["message"])


@router.post("/verify")
async def verify_phone_otp(body: PhoneOtpVerifyRequest):
    """
    Verify a login code.

    Returns the user, a token pair and whether the account was just created.
    """
    result = await get_otp_service().verify_otp(PHONE_CHANNEL, body.phone, body.otp)
    return success_response(result, message="OTP verified successfully")


@router.post("/resend", dependencies=[Depends(otp_rate_limit)])
async def resend_phone_otp(body: PhoneOtpRequest):
    """Invalidate pending codes and send a new one."""
    result = await get_otp_service().resend_otp(PHONE_CHANNEL, body.phone)
    return success_response({"expiresIn": result["expiresIn"]}, message=result["message"])


@router.post("/password-reset/send", dependencies=[Depends(otp_rate_limit)])
async def send_password_reset_otp(body: EmailOtpRequest):
    """Send a password reset code by email."""
    result = await get_otp_service().send_otp(EMAIL_CHANNEL, body.email)
    return success_response({"expiresIn": result["expiresIn"]}, message=result["message"])


@router.post("/password-reset/verify")
async def verify_password_reset_otp(body: EmailOtpVerifyRequest):
    """Exchange a password reset code for a reset token."""
    result = await get_otp_service().verify_otp(EMAIL_CHANNEL, body.email, body.otp)
    return success_response(result, message="OTP verified successfully")


@router.post("/password-reset/resend", dependencies=[Depends(otp_rate_limit)])
async def resend_password_reset_otp(body: EmailOtpRequest):
    """Invalidate pending password reset codes and email a new one."""
    result = await get_otp_service().resend_otp(EMAIL_CHANNEL, body.email)
    return success_response({"expiresIn": result["expiresIn"]}, message=result["message"])
