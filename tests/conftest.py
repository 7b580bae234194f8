"""Shared test fixtures for marketplace backend tests."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from common.crypto import PasswordHasher
from marketplace.services.audit import AuditService
from marketplace.services.auth import DeviceDetector, TokenManager
from marketplace.services.fraud import FraudService
from marketplace.services.otp import OtpService
from marketplace.services.tasks import BackgroundTaskRunner
from tests.fakes import ACCESS_SECRET, REFRESH_SECRET, STRONG_PASSWORD, FakeCredentialStore


@pytest.fixture
def sample_user_id():
    return str(ObjectId())


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() and aggregate() return cursors synchronously (not
    # coroutines), so use MagicMock for them. Async methods like
    # find_one, insert_one, count_documents etc. stay as AsyncMock.
    collection.find = MagicMock()
    collection.aggregate = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


@pytest.fixture
def store():
    return FakeCredentialStore()


@pytest.fixture
def runner():
    return BackgroundTaskRunner()


@pytest.fixture
def password_hasher():
    # Lowest bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def token_manager(store):
    return TokenManager(
        store=store,
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        access_expiry_seconds=900,
        refresh_expiry_seconds=7 * 24 * 3600,
        reset_expiry_seconds=3600,
    )


@pytest.fixture
def audit_service(store):
    return AuditService(store)


@pytest.fixture
def notification_service():
    service = MagicMock()
    service.create_notification = AsyncMock(return_value={"_id": ObjectId()})
    service.notify_roles = AsyncMock(return_value=1)
    return service


@pytest.fixture
def email_service():
    service = MagicMock()
    service.send_welcome_email = AsyncMock(return_value={"success": True})
    service.send_password_reset_email = AsyncMock(return_value={"success": True})
    service.send_otp_email = AsyncMock(return_value={"success": True})
    return service


@pytest.fixture
def sms_service():
    service = MagicMock()
    service.send_otp = AsyncMock(return_value={"success": True})
    return service


@pytest.fixture
def device_detector():
    return DeviceDetector()


@pytest.fixture
def fraud_service(store, audit_service, notification_service, runner):
    return FraudService(
        store=store,
        audit_service=audit_service,
        notification_service=notification_service,
        runner=runner,
    )


@pytest.fixture
def otp_service(store, token_manager, runner, sms_service, email_service):
    return OtpService(
        store=store,
        token_manager=token_manager,
        runner=runner,
        sms_service=sms_service,
        email_service=email_service,
    )


@pytest_asyncio.fixture
async def registered_user(store, password_hasher):
    """A buyer with STRONG_PASSWORD, created directly in the store."""
    role = await store.find_role_by_name("buyer")
    return await store.create_user(
        email="anna@example.com",
        name="Anna Svensson",
        role=role,
        password_hash=password_hasher.hash_password(STRONG_PASSWORD),
    )
