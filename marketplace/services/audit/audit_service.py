"""
Append-only audit trail for security-relevant actions.
"""

import logging
from typing import Any, Dict, Optional

from marketplace.database.credential_store import CredentialStore, to_object_id

logger = logging.getLogger(__name__)


class AuditAction:
    USER_REGISTERED = "USER_REGISTERED"
    USER_LOGIN = "USER_LOGIN"
    PASSWORD_RESET = "PASSWORD_RESET"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    LOGOUT_ALL = "LOGOUT_ALL"
    SESSION_REVOKED = "SESSION_REVOKED"
    USER_FLAGGED_HIGH_RISK = "USER_FLAGGED_HIGH_RISK"
    POSTING_RESTRICTED = "POSTING_RESTRICTED"
    FRAUD_LOG_REVIEWED = "FRAUD_LOG_REVIEWED"


class AuditService:
    """Writes audit log entries through the credential store."""

    def __init__(self, store: CredentialStore):
        self._store = store

    async def log(
        self,
        action: str,
        actor_user_id: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record an action.

        Args:
            action: One of the AuditAction tags
            actor_user_id: User performing the action (None for system jobs)
            entity_type: Kind of record acted on, e.g. "user" or "fraudLog"
            entity_id: Id of that record
            metadata: Free-form structured detail
            ip_address: Client IP, when the action came from a request
            device_info: Parsed User-Agent, when available
        """
        await self._store.insert_audit_log({
            "actorUserId": to_object_id(actor_user_id) if actor_user_id else None,
            "action": action,
            "entityType": entity_type,
            "entityId": to_object_id(entity_id) if entity_id else None,
            "metadata": metadata or {},
            "ipAddress": ip_address,
            "deviceInfo": device_info,
        })
        logger.debug(f"Audit {action} by {actor_user_id} on {entity_type}:{entity_id}")
