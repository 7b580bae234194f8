"""
FastAPI router for fraud review endpoints.

Moderator and admin only.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query

from common.utils import paginated_response, success_response
from marketplace.dependencies import get_fraud_service, require_moderator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fraud", tags=["fraud"])


@router.get("/logs")
async def list_fraud_logs(
    user: Annotated[dict, Depends(require_moderator)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    type: Optional[str] = Query(None),
    minRiskScore: Optional[int] = Query(None, ge=0),
):
    """List fraud logs, newest first."""
    result = await get_fraud_service().get_all_fraud_logs(
        page=page,
        limit=limit,
        log_type=type,
        min_risk_score=minRiskScore,
    )
    return paginated_response(result["items"], result["pagination"])


@router.get("/users/{user_id}/logs")
async def list_user_fraud_logs(
    user_id: str,
    user: Annotated[dict, Depends(require_moderator)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """List fraud logs of one user."""
    result = await get_fraud_service().get_user_fraud_logs(user_id, page=page, limit=limit)
    return paginated_response(result["items"], result["pagination"])


@router.get("/high-risk-users")
async def list_high_risk_users(
    user: Annotated[dict, Depends(require_moderator)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Users whose summed risk score meets the threshold."""
    result = await get_fraud_service().get_high_risk_users(page=page, limit=limit)
    return paginated_response(result["items"], result["pagination"])


@router.patch("/logs/{log_id}/review")
async def review_fraud_log(
    log_id: str,
    user: Annotated[dict, Depends(require_moderator)],
):
    """Mark a fraud log as reviewed by the current moderator."""
    fraud_log = await get_fraud_service().mark_as_reviewed(log_id, user["userId"])
    return success_response(fraud_log, message="Fraud log marked as reviewed")
