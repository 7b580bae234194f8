"""Tests for NotificationService."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from marketplace.services.notifications import NotificationService


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_create_notification(self, mock_db, mock_collection, sample_user_id):
        inserted_id = ObjectId()
        mock_collection.insert_one.return_value = MagicMock(inserted_id=inserted_id)

        doc = await NotificationService(mock_db).create_notification(
            sample_user_id, "welcome", "Welcome", "Hi there",
        )

        assert doc["_id"] == inserted_id
        assert doc["userId"] == ObjectId(sample_user_id)
        assert doc["read"] is False
        assert doc["data"] == {}

    @pytest.mark.asyncio
    async def test_notify_roles_matches_both_role_shapes(self, mock_db, mock_collection):
        recipients = [{"_id": ObjectId()}, {"_id": ObjectId()}]
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=recipients)
        mock_collection.find.return_value = cursor

        count = await NotificationService(mock_db).notify_roles(
            ["moderator", "admin"], "fraud_alert", "Flagged", "User flagged", {"userId": "x"},
        )

        assert count == 2
        query = mock_collection.find.call_args.args[0]
        assert {"role": {"$in": ["moderator", "admin"]}} in query["$or"]
        assert {"role.name": {"$in": ["moderator", "admin"]}} in query["$or"]
        docs = mock_collection.insert_many.await_args.args[0]
        assert [d["userId"] for d in docs] == [r["_id"] for r in recipients]

    @pytest.mark.asyncio
    async def test_notify_roles_without_recipients(self, mock_db, mock_collection):
        cursor = MagicMock()
        cursor.to_list = AsyncMock(return_value=[])
        mock_collection.find.return_value = cursor

        assert await NotificationService(mock_db).notify_roles(["admin"], "fraud_alert", "t", "m") == 0
        mock_collection.insert_many.assert_not_awaited()
