"""
FastAPI router for Auth endpoints.

Provides registration, login, token refresh, logout, password reset and
device session management.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from common.utils import success_response
from marketplace.dependencies import (
    auth_rate_limit,
    get_audit_service,
    get_credential_store,
    get_device_detector,
    get_email_service,
    get_fraud_service,
    get_notification_service,
    get_password_hasher,
    get_task_runner,
    get_token_manager,
    require_auth,
    get_client_ip,
    get_user_agent,
)
from marketplace.pipelines import auth as auth_pipelines
from marketplace.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201, dependencies=[Depends(auth_rate_limit)])
async def register(body: RegisterRequest):
    """
    Register a new user account.

    Returns the sanitized user and a first token pair.
    """
    result = await auth_pipelines.register_pipeline(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        password_hasher=get_password_hasher(),
        audit_service=get_audit_service(),
        runner=get_task_runner(),
        notification_service=get_notification_service(),
        email_service=get_email_service(),
        email=body.email,
        password=body.password,
        name=body.name,
        phone=body.phone,
        role=body.role,
    )
    return success_response(result, message="Registration successful")


@router.post("/login", dependencies=[Depends(auth_rate_limit)])
async def login(request: Request, body: LoginRequest):
    """Log in with email and password."""
    result = await auth_pipelines.login_pipeline(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        password_hasher=get_password_hasher(),
        audit_service=get_audit_service(),
        runner=get_task_runner(),
        fraud_service=get_fraud_service(),
        device_detector=get_device_detector(),
        email=body.email,
        password=body.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return success_response(result, message="Login successful")


@router.post("/refresh")
async def refresh(body: RefreshTokenRequest):
    """Exchange a refresh token for a new token pair."""
    result = await auth_pipelines.refresh_pipeline(get_token_manager(), body.refreshToken)
    return success_response(result)


@router.post("/logout")
async def logout(body: RefreshTokenRequest):
    """Revoke a refresh token."""
    result = await auth_pipelines.logout_pipeline(get_token_manager(), body.refreshToken)
    return success_response(message=result["message"])


@router.post("/logout-all")
async def logout_all(user: Annotated[dict, Depends(require_auth)]):
    """Revoke every refresh token of the current user."""
    result = await auth_pipelines.logout_all_pipeline(
        token_manager=get_token_manager(),
        audit_service=get_audit_service(),
        user_id=user["userId"],
    )
    return success_response({"revokedCount": result["revokedCount"]}, message=result["message"])


@router.post("/forgot-password", dependencies=[Depends(auth_rate_limit)])
async def forgot_password(body: ForgotPasswordRequest):
    """
    Request a password reset link.

    Always returns the same response, whether or not the email exists.
    """
    result = await auth_pipelines.forgot_password_pipeline(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        runner=get_task_runner(),
        email_service=get_email_service(),
        email=body.email,
    )
    return success_response(message=result["message"])


@router.post("/reset-password", dependencies=[Depends(auth_rate_limit)])
async def reset_password(request: Request, body: ResetPasswordRequest):
    """Set a new password with a reset token."""
    result = await auth_pipelines.reset_password_pipeline(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        password_hasher=get_password_hasher(),
        audit_service=get_audit_service(),
        token=body.token,
        new_password=body.password,
        ip_address=get_client_ip(request),
    )
    return success_response(message=result["message"])


@router.post("/change-password")
async def change_password(
    request: Request,
    body: ChangePasswordRequest,
    user: Annotated[dict, Depends(require_auth)],
):
    """Change the current user's password and end all sessions."""
    result = await auth_pipelines.change_password_pipeline(
        store=get_credential_store(),
        token_manager=get_token_manager(),
        password_hasher=get_password_hasher(),
        audit_service=get_audit_service(),
        user_id=user["userId"],
        current_password=body.currentPassword,
        new_password=body.newPassword,
        ip_address=get_client_ip(request),
    )
    return success_response(message=result["message"])


@router.get("/me")
async def get_me(user: Annotated[dict, Depends(require_auth)]):
    """Get the current user's profile."""
    profile = await auth_pipelines.get_current_user_pipeline(
        get_credential_store(),
        user["userId"],
    )
    return success_response(profile)


@router.get("/sessions")
async def list_sessions(user: Annotated[dict, Depends(require_auth)]):
    """List active device sessions."""
    sessions = await auth_pipelines.list_sessions_pipeline(
        get_credential_store(),
        user["userId"],
    )
    return success_response({"sessions": sessions})


@router.delete("/sessions/{session_id}")
async def revoke_session(
    session_id: str,
    user: Annotated[dict, Depends(require_auth)],
):
    """Revoke one of the current user's device sessions."""
    result = await auth_pipelines.revoke_session_pipeline(
        store=get_credential_store(),
        audit_service=get_audit_service(),
        user_id=user["userId"],
        session_id=session_id,
    )
    return success_response(message=result["message"])
