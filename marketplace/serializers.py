"""
JSON-ready views of stored documents.

ObjectIds become strings and datetimes ISO-8601; password hashes and
internal fields never leave the process.
"""

from datetime import datetime
from typing import Any, Optional


def iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def sanitize_user(user: dict) -> dict:
    """Public view of a user."""
    return {
        "id": str(user["_id"]),
        "email": user.get("email"),
        "phone": user.get("phone"),
        "name": user.get("name"),
        "role": user.get("role"),
        "isVerified": user.get("isVerified", False),
        "isBlocked": user.get("isBlocked", False),
        "canPostListings": user.get("canPostListings", True),
        "lastLoginAt": iso(user.get("lastLoginAt")),
        "createdAt": iso(user.get("createdAt")),
    }


def format_session(session: dict) -> dict:
    return {
        "id": str(session["_id"]),
        "device": session.get("device"),
        "ipAddress": session.get("ipAddress"),
        "createdAt": iso(session.get("createdAt")),
        "lastSeenAt": iso(session.get("lastSeenAt")),
    }


def format_fraud_log(log: dict) -> dict:
    return {
        "id": str(log["_id"]),
        "userId": _id(log.get("userId")),
        "type": log.get("type"),
        "details": log.get("details", {}),
        "riskScore": log.get("riskScore", 0),
        "isReviewed": log.get("isReviewed", False),
        "reviewedBy": _id(log.get("reviewedBy")),
        "reviewedAt": iso(log.get("reviewedAt")),
        "createdAt": iso(log.get("createdAt")),
    }
