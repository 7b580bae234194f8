"""
Notification service for in-app notifications.

Notifications are a best-effort side channel: callers submit them as
background tasks so a failed insert never affects the primary flow.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class NotificationService:
    """
    Handles in-app notification creation.

    Notification types:
    - welcome: Sent after registration
    - fraud_alert: A user was flagged as high risk (moderators)
    - posting_restricted: The user's posting permission was revoked
    """

    NOTIFICATION_TYPES = [
        "welcome",
        "fraud_alert",
        "posting_restricted",
    ]

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize NotificationService.

        Args:
            db: MongoDB database connection
        """
        self._db = db
        self._collection = db["notifications"]
        self._users_collection = db["users"]

    async def create_notification(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Create a new notification for a user.

        Args:
            user_id: Target user ID
            notification_type: One of NOTIFICATION_TYPES
            title: Short notification title
            message: Full notification message
            data: Optional structured payload

        Returns:
            Created notification document
        """
        now = datetime.now(timezone.utc)

        notification_doc = {
            "userId": ObjectId(user_id),
            "type": notification_type,
            "title": title,
            "message": message,
            "data": data or {},
            "read": False,
            "readAt": None,
            "createdAt": now,
        }

        result = await self._collection.insert_one(notification_doc)
        notification_doc["_id"] = result.inserted_id

        logger.info(f"Created notification for user {user_id}: {notification_type}")
        return notification_doc

    async def notify_roles(
        self,
        roles: List[str],
        notification_type: str,
        title: str,
        message: str,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Notify every active user holding one of ``roles``.

        Returns:
            Number of notifications created
        """
        # Role is stored either as a name or as an embedded {_id, name} record
        cursor = self._users_collection.find(
            {
                "$or": [{"role": {"$in": roles}}, {"role.name": {"$in": roles}}],
                "isDeleted": {"$ne": True},
            },
            {"_id": 1},
        )
        recipients = await cursor.to_list(length=None)
        if not recipients:
            return 0

        now = datetime.now(timezone.utc)
        docs = [
            {
                "userId": recipient["_id"],
                "type": notification_type,
                "title": title,
                "message": message,
                "data": data or {},
                "read": False,
                "readAt": None,
                "createdAt": now,
            }
            for recipient in recipients
        ]
        await self._collection.insert_many(docs)

        logger.info(f"Created {len(docs)} {notification_type} notifications for roles {roles}")
        return len(docs)
