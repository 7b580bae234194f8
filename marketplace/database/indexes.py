"""
Index creation and role seeding, run once at startup.

Unique indexes are the enforcement point for email and phone uniqueness;
the application-level existence checks only produce friendlier errors.
"""

import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING

from marketplace.database.credential_store import (
    AUDIT_LOGS,
    DEVICE_SESSIONS,
    FRAUD_LOGS,
    LISTINGS,
    OTP_REQUESTS,
    PASSWORD_RESET_TOKENS,
    REFRESH_TOKENS,
    ROLES,
    SYSTEM_CONFIG,
    USERS,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_ROLES = ("buyer", "seller", "designer", "moderator", "admin")


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Create the indexes the credential store relies on. Safe to re-run."""
    await db[USERS].create_index("email", unique=True)
    await db[USERS].create_index("phone", unique=True, sparse=True)
    await db[ROLES].create_index("name", unique=True)

    await db[REFRESH_TOKENS].create_index("tokenHash", unique=True)
    await db[REFRESH_TOKENS].create_index([("userId", ASCENDING), ("revokedAt", ASCENDING)])

    await db[PASSWORD_RESET_TOKENS].create_index("tokenHash", unique=True)
    await db[PASSWORD_RESET_TOKENS].create_index([("userId", ASCENDING), ("usedAt", ASCENDING)])

    await db[OTP_REQUESTS].create_index(
        [("channel", ASCENDING), ("destination", ASCENDING), ("createdAt", DESCENDING)]
    )

    await db[DEVICE_SESSIONS].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    await db[DEVICE_SESSIONS].create_index(
        [("userId", ASCENDING), ("ipAddress", ASCENDING), ("userAgent", ASCENDING)]
    )

    await db[FRAUD_LOGS].create_index([("userId", ASCENDING), ("type", ASCENDING), ("createdAt", DESCENDING)])
    await db[FRAUD_LOGS].create_index([("createdAt", DESCENDING)])

    await db[AUDIT_LOGS].create_index([("actorUserId", ASCENDING), ("createdAt", DESCENDING)])

    await db[LISTINGS].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
    await db[LISTINGS].create_index("contactPhone")

    await db[SYSTEM_CONFIG].create_index("key", unique=True)

    logger.info("Credential store indexes ensured")


async def seed_roles(db: AsyncIOMotorDatabase) -> None:
    """Insert the default roles if they are missing."""
    for name in DEFAULT_ROLES:
        await db[ROLES].update_one(
            {"name": name},
            {"$setOnInsert": {"name": name, "createdAt": utc_now()}},
            upsert=True,
        )
