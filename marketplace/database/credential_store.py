"""
Credential store accessor.

All reads and writes for users, roles, refresh tokens, password-reset
tokens, OTP requests, device sessions, fraud logs and audit logs go
through CredentialStore. Listing and system-config collections are only
read here.

Every store call is bounded by a timeout. A timeout or a lost connection
raises StoreUnavailableError, which callers can retry; business-rule
failures are raised by the services above this layer.

Conditional updates (revoke, consume, verify) carry their precondition in
the filter, so a single-document update is the atomic check.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, ExecutionTimeout

from marketplace.errors import EmailExistsError, PhoneExistsError, StoreUnavailableError

logger = logging.getLogger(__name__)

RoleField = Union[str, Dict[str, Any], None]

USERS = "users"
ROLES = "roles"
REFRESH_TOKENS = "refreshTokens"
PASSWORD_RESET_TOKENS = "passwordResetTokens"
OTP_REQUESTS = "otpRequests"
DEVICE_SESSIONS = "deviceSessions"
FRAUD_LOGS = "fraudLogs"
AUDIT_LOGS = "auditLogs"
LISTINGS = "listings"
SYSTEM_CONFIG = "systemConfig"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Convert a string id to ObjectId, or None when it is not a valid id."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def resolve_role_name(role: RoleField) -> Optional[str]:
    """
    Normalize the stored role into a plain role name.

    Users carry either a role name string or an embedded {_id, name}
    record. Nothing above the store sees the embedded form.
    """
    if role is None:
        return None
    if isinstance(role, str):
        return role
    if isinstance(role, dict):
        return role.get("name")
    raise TypeError(f"Unsupported role value: {role!r}")


def _with_role_name(user: Optional[dict]) -> Optional[dict]:
    if user is not None:
        user["role"] = resolve_role_name(user.get("role"))
    return user


class CredentialStore:
    """
    Data access for the credential, OTP and fraud subsystems.
    """

    def __init__(self, db: AsyncIOMotorDatabase, timeout: float = 5.0):
        """
        Initialize CredentialStore.

        Args:
            db: MongoDB database connection
            timeout: Upper bound in seconds for each store call
        """
        self._db = db
        self._timeout = timeout
        self._users = db[USERS]
        self._roles = db[ROLES]
        self._refresh_tokens = db[REFRESH_TOKENS]
        self._reset_tokens = db[PASSWORD_RESET_TOKENS]
        self._otp_requests = db[OTP_REQUESTS]
        self._device_sessions = db[DEVICE_SESSIONS]
        self._fraud_logs = db[FRAUD_LOGS]
        self._audit_logs = db[AUDIT_LOGS]
        self._listings = db[LISTINGS]
        self._system_config = db[SYSTEM_CONFIG]

    @property
    def timeout(self) -> float:
        return self._timeout

    def with_timeout(self, timeout: float) -> "CredentialStore":
        """Return a store sharing this database with a different call timeout."""
        return CredentialStore(self._db, timeout=timeout)

    async def _bounded(self, awaitable: Awaitable, operation: str) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Store operation '{operation}' timed out after {self._timeout}s")
            raise StoreUnavailableError(operation) from e
        except (ConnectionFailure, ExecutionTimeout) as e:
            logger.error(f"Store operation '{operation}' failed: {e}")
            raise StoreUnavailableError(operation) from e

    # ─────────────────────────────────────────────────────────────────
    # Users and roles
    # ─────────────────────────────────────────────────────────────────

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        user = await self._bounded(
            self._users.find_one({"email": email.strip().lower()}),
            "find_user_by_email",
        )
        return _with_role_name(user)

    async def find_user_by_phone(self, phone: str) -> Optional[dict]:
        user = await self._bounded(
            self._users.find_one({"phone": phone}),
            "find_user_by_phone",
        )
        return _with_role_name(user)

    async def find_user_by_id(self, user_id: str) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        user = await self._bounded(
            self._users.find_one({"_id": oid}),
            "find_user_by_id",
        )
        return _with_role_name(user)

    async def find_role_by_name(self, name: str) -> Optional[dict]:
        return await self._bounded(
            self._roles.find_one({"name": name}),
            "find_role_by_name",
        )

    async def create_user(
        self,
        email: str,
        name: str,
        role: dict,
        password_hash: Optional[str] = None,
        phone: Optional[str] = None,
        is_verified: bool = False,
    ) -> dict:
        """
        Insert a new user.

        Args:
            email: Email address (stored lower-cased)
            name: Display name
            role: Role record {_id, name} from the roles collection
            password_hash: bcrypt hash, None for OTP-provisioned accounts
            phone: Optional phone number
            is_verified: Initial verification flag

        Returns:
            The created user with the role resolved to its name

        Raises:
            EmailExistsError: Unique index on email rejected the insert
            PhoneExistsError: Unique index on phone rejected the insert
        """
        now = utc_now()
        doc = {
            "email": email.strip().lower(),
            "name": name,
            "passwordHash": password_hash,
            "role": {"_id": role["_id"], "name": role["name"]},
            "isVerified": is_verified,
            "isBlocked": False,
            "isDeleted": False,
            "canPostListings": True,
            "lastLoginAt": None,
            "createdAt": now,
            "updatedAt": now,
        }
        if phone:
            doc["phone"] = phone

        try:
            result = await self._bounded(self._users.insert_one(doc), "create_user")
        except DuplicateKeyError as e:
            key_pattern = (e.details or {}).get("keyPattern") or {}
            if "phone" in key_pattern:
                raise PhoneExistsError() from e
            raise EmailExistsError() from e

        doc["_id"] = result.inserted_id
        return _with_role_name(doc)

    async def update_user(self, user_id: str, fields: dict) -> bool:
        oid = to_object_id(user_id)
        if oid is None:
            return False
        result = await self._bounded(
            self._users.update_one(
                {"_id": oid},
                {"$set": {**fields, "updatedAt": utc_now()}},
            ),
            "update_user",
        )
        return result.matched_count > 0

    async def set_last_login(self, user_id: str) -> bool:
        return await self.update_user(user_id, {"lastLoginAt": utc_now()})

    async def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        return await self.update_user(user_id, {"passwordHash": password_hash})

    async def set_posting_permission(self, user_id: str, allowed: bool) -> bool:
        return await self.update_user(user_id, {"canPostListings": allowed})

    async def find_user_summaries(self, user_ids: List[ObjectId]) -> Dict[str, dict]:
        """Fetch name/email/phone for a set of users, keyed by string id."""
        cursor = self._users.find(
            {"_id": {"$in": user_ids}},
            {"name": 1, "email": 1, "phone": 1, "isBlocked": 1, "canPostListings": 1},
        )
        users = await self._bounded(cursor.to_list(length=None), "find_user_summaries")
        return {str(u["_id"]): u for u in users}

    # ─────────────────────────────────────────────────────────────────
    # Refresh tokens
    # ─────────────────────────────────────────────────────────────────

    async def insert_refresh_token(
        self,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
    ) -> ObjectId:
        result = await self._bounded(
            self._refresh_tokens.insert_one({
                "userId": ObjectId(user_id),
                "tokenHash": token_hash,
                "expiresAt": expires_at,
                "revokedAt": None,
                "createdAt": utc_now(),
            }),
            "insert_refresh_token",
        )
        return result.inserted_id

    async def revoke_live_refresh_token(self, token_hash: str) -> Optional[dict]:
        """
        Revoke a live refresh token and return it.

        Only one caller can win for a given token; every other caller
        (including a replay of the same token) gets None.
        """
        now = utc_now()
        return await self._bounded(
            self._refresh_tokens.find_one_and_update(
                {
                    "tokenHash": token_hash,
                    "revokedAt": None,
                    "expiresAt": {"$gt": now},
                },
                {"$set": {"revokedAt": now}},
                return_document=ReturnDocument.AFTER,
            ),
            "revoke_live_refresh_token",
        )

    async def revoke_refresh_token(self, token_hash: str) -> bool:
        """Revoke by hash. Returns False when already revoked or unknown."""
        result = await self._bounded(
            self._refresh_tokens.update_one(
                {"tokenHash": token_hash, "revokedAt": None},
                {"$set": {"revokedAt": utc_now()}},
            ),
            "revoke_refresh_token",
        )
        return result.modified_count == 1

    async def revoke_all_refresh_tokens(self, user_id: str) -> int:
        result = await self._bounded(
            self._refresh_tokens.update_many(
                {"userId": ObjectId(user_id), "revokedAt": None},
                {"$set": {"revokedAt": utc_now()}},
            ),
            "revoke_all_refresh_tokens",
        )
        return result.modified_count

    # ─────────────────────────────────────────────────────────────────
    # Password-reset tokens
    # ─────────────────────────────────────────────────────────────────

    async def invalidate_reset_tokens(self, user_id: str) -> int:
        result = await self._bounded(
            self._reset_tokens.update_many(
                {"userId": ObjectId(user_id), "usedAt": None},
                {"$set": {"usedAt": utc_now()}},
            ),
            "invalidate_reset_tokens",
        )
        return result.modified_count

    async def insert_reset_token(
        self,
        user_id: str,
        token_hash: str,
        expires_at: datetime,
    ) -> ObjectId:
        result = await self._bounded(
            self._reset_tokens.insert_one({
                "userId": ObjectId(user_id),
                "tokenHash": token_hash,
                "expiresAt": expires_at,
                "usedAt": None,
                "createdAt": utc_now(),
            }),
            "insert_reset_token",
        )
        return result.inserted_id

    async def find_active_reset_token(self, token_hash: str) -> Optional[dict]:
        return await self._bounded(
            self._reset_tokens.find_one({
                "tokenHash": token_hash,
                "usedAt": None,
                "expiresAt": {"$gt": utc_now()},
            }),
            "find_active_reset_token",
        )

    async def mark_reset_token_used(self, token_id: ObjectId) -> bool:
        result = await self._bounded(
            self._reset_tokens.update_one(
                {"_id": token_id, "usedAt": None},
                {"$set": {"usedAt": utc_now()}},
            ),
            "mark_reset_token_used",
        )
        return result.modified_count == 1

    async def release_reset_token(self, token_id: ObjectId) -> bool:
        result = await self._bounded(
            self._reset_tokens.update_one(
                {"_id": token_id, "usedAt": {"$ne": None}},
                {"$set": {"usedAt": None}},
            ),
            "release_reset_token",
        )
        return result.modified_count == 1

    # ─────────────────────────────────────────────────────────────────
    # OTP requests
    # ─────────────────────────────────────────────────────────────────

    async def find_latest_otp_since(
        self,
        channel: str,
        destination: str,
        since: datetime,
    ) -> Optional[dict]:
        cursor = self._otp_requests.find(
            {"channel": channel, "destination": destination, "createdAt": {"$gte": since}}
        ).sort("createdAt", -1).limit(1)
        requests = await self._bounded(cursor.to_list(length=1), "find_latest_otp_since")
        return requests[0] if requests else None

    async def insert_otp_request(
        self,
        channel: str,
        destination: str,
        code_hash: str,
        expires_at: datetime,
        user_id: Optional[str] = None,
    ) -> dict:
        doc = {
            "userId": ObjectId(user_id) if user_id else None,
            "channel": channel,
            "destination": destination,
            "codeHash": code_hash,
            "expiresAt": expires_at,
            "verifiedAt": None,
            "attempts": 0,
            "createdAt": utc_now(),
        }
        result = await self._bounded(self._otp_requests.insert_one(doc), "insert_otp_request")
        doc["_id"] = result.inserted_id
        return doc

    async def find_matching_otp(
        self,
        channel: str,
        destination: str,
        code_hash: str,
        max_attempts: int,
    ) -> Optional[dict]:
        """Most recent pending, unexpired, non-exhausted request with this code."""
        cursor = self._otp_requests.find({
            "channel": channel,
            "destination": destination,
            "codeHash": code_hash,
            "verifiedAt": None,
            "expiresAt": {"$gt": utc_now()},
            "attempts": {"$lt": max_attempts},
        }).sort("createdAt", -1).limit(1)
        requests = await self._bounded(cursor.to_list(length=1), "find_matching_otp")
        return requests[0] if requests else None

    async def increment_latest_otp_attempts(self, channel: str, destination: str) -> Optional[dict]:
        """Count a wrong guess against the most recent pending request only."""
        return await self._bounded(
            self._otp_requests.find_one_and_update(
                {
                    "channel": channel,
                    "destination": destination,
                    "verifiedAt": None,
                    "expiresAt": {"$gt": utc_now()},
                },
                {"$inc": {"attempts": 1}},
                sort=[("createdAt", -1)],
                return_document=ReturnDocument.AFTER,
            ),
            "increment_latest_otp_attempts",
        )

    async def mark_otp_verified(self, request_id: ObjectId) -> bool:
        result = await self._bounded(
            self._otp_requests.update_one(
                {"_id": request_id, "verifiedAt": None},
                {"$set": {"verifiedAt": utc_now()}},
            ),
            "mark_otp_verified",
        )
        return result.modified_count == 1

    async def expire_pending_otps(self, channel: str, destination: str) -> int:
        now = utc_now()
        result = await self._bounded(
            self._otp_requests.update_many(
                {
                    "channel": channel,
                    "destination": destination,
                    "verifiedAt": None,
                    "expiresAt": {"$gt": now},
                },
                {"$set": {"expiresAt": now}},
            ),
            "expire_pending_otps",
        )
        return result.modified_count

    # ─────────────────────────────────────────────────────────────────
    # Device sessions
    # ─────────────────────────────────────────────────────────────────

    async def record_device_session(
        self,
        user_id: str,
        ip_address: str,
        user_agent: str,
        device: dict,
    ) -> dict:
        """Create a session for a new (ip, user agent) pair, or touch the existing one."""
        now = utc_now()
        return await self._bounded(
            self._device_sessions.find_one_and_update(
                {
                    "userId": ObjectId(user_id),
                    "ipAddress": ip_address,
                    "userAgent": user_agent,
                    "revokedAt": None,
                },
                {
                    "$set": {"lastSeenAt": now},
                    "$setOnInsert": {"device": device, "createdAt": now},
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            ),
            "record_device_session",
        )

    async def count_device_sessions_since(self, user_id: str, since: datetime) -> int:
        return await self._bounded(
            self._device_sessions.count_documents({
                "userId": ObjectId(user_id),
                "createdAt": {"$gte": since},
            }),
            "count_device_sessions_since",
        )

    async def list_device_sessions(self, user_id: str) -> List[dict]:
        cursor = self._device_sessions.find(
            {"userId": ObjectId(user_id), "revokedAt": None}
        ).sort("lastSeenAt", -1)
        return await self._bounded(cursor.to_list(length=None), "list_device_sessions")

    async def revoke_device_session(self, user_id: str, session_id: str) -> bool:
        oid = to_object_id(session_id)
        if oid is None:
            return False
        result = await self._bounded(
            self._device_sessions.update_one(
                {"_id": oid, "userId": ObjectId(user_id), "revokedAt": None},
                {"$set": {"revokedAt": utc_now()}},
            ),
            "revoke_device_session",
        )
        return result.modified_count == 1

    async def aggregate_device_counts(self, since: datetime, more_than: int) -> List[dict]:
        """Users with more than ``more_than`` sessions created since ``since``."""
        pipeline = [
            {"$match": {"createdAt": {"$gte": since}}},
            {"$group": {"_id": "$userId", "count": {"$sum": 1}}},
            {"$match": {"count": {"$gt": more_than}}},
        ]
        cursor = self._device_sessions.aggregate(pipeline)
        return await self._bounded(cursor.to_list(length=None), "aggregate_device_counts")

    # ─────────────────────────────────────────────────────────────────
    # Listings (read-only)
    # ─────────────────────────────────────────────────────────────────

    async def find_listing(self, listing_id: str) -> Optional[dict]:
        oid = to_object_id(listing_id)
        if oid is None:
            return None
        return await self._bounded(self._listings.find_one({"_id": oid}), "find_listing")

    async def count_listings_since(self, user_id: str, since: datetime) -> int:
        return await self._bounded(
            self._listings.count_documents({
                "userId": ObjectId(user_id),
                "createdAt": {"$gte": since},
            }),
            "count_listings_since",
        )

    async def count_other_users_with_phone(self, phone: str, user_id: str) -> int:
        """Distinct other users with a non-deleted listing using this contact phone."""
        other_user_ids = await self._bounded(
            self._listings.distinct(
                "userId",
                {
                    "contactPhone": phone,
                    "userId": {"$ne": ObjectId(user_id)},
                    "isDeleted": {"$ne": True},
                },
            ),
            "count_other_users_with_phone",
        )
        return len(other_user_ids)

    async def count_rejected_listings_since(self, user_id: str, since: datetime) -> int:
        return await self._bounded(
            self._listings.count_documents({
                "userId": ObjectId(user_id),
                "status": "rejected",
                "updatedAt": {"$gte": since},
            }),
            "count_rejected_listings_since",
        )

    async def aggregate_rejection_counts(self, since: datetime, at_least: int) -> List[dict]:
        """Users with at least ``at_least`` listings rejected since ``since``."""
        pipeline = [
            {"$match": {"status": "rejected", "updatedAt": {"$gte": since}}},
            {"$group": {"_id": "$userId", "count": {"$sum": 1}}},
            {"$match": {"count": {"$gte": at_least}}},
        ]
        cursor = self._listings.aggregate(pipeline)
        return await self._bounded(cursor.to_list(length=None), "aggregate_rejection_counts")

    # ─────────────────────────────────────────────────────────────────
    # Fraud logs
    # ─────────────────────────────────────────────────────────────────

    async def insert_fraud_log(
        self,
        user_id: str,
        log_type: str,
        details: dict,
        risk_score: int,
    ) -> dict:
        doc = {
            "userId": ObjectId(user_id),
            "type": log_type,
            "details": details,
            "riskScore": risk_score,
            "isReviewed": False,
            "createdAt": utc_now(),
        }
        result = await self._bounded(self._fraud_logs.insert_one(doc), "insert_fraud_log")
        doc["_id"] = result.inserted_id
        return doc

    async def find_fraud_logs(
        self,
        query: dict,
        skip: int,
        limit: int,
    ) -> Tuple[List[dict], int]:
        cursor = self._fraud_logs.find(query).sort("createdAt", -1).skip(skip).limit(limit)
        items = await self._bounded(cursor.to_list(length=limit), "find_fraud_logs")
        total = await self._bounded(self._fraud_logs.count_documents(query), "count_fraud_logs")
        return items, total

    async def has_fraud_log_since(self, user_id: Any, log_type: str, since: datetime) -> bool:
        existing = await self._bounded(
            self._fraud_logs.find_one({
                "userId": to_object_id(user_id),
                "type": log_type,
                "createdAt": {"$gte": since},
            }),
            "has_fraud_log_since",
        )
        return existing is not None

    @staticmethod
    def _high_risk_pipeline(threshold: int, since: Optional[datetime]) -> List[dict]:
        match: Dict[str, Any] = {}
        if since is not None:
            match["createdAt"] = {"$gte": since}

        return [
            {"$match": match},
            {
                "$group": {
                    "_id": "$userId",
                    "totalRiskScore": {"$sum": "$riskScore"},
                    "logCount": {"$sum": 1},
                    "lastDetectedAt": {"$max": "$createdAt"},
                }
            },
            {"$match": {"totalRiskScore": {"$gte": threshold}}},
        ]

    async def aggregate_high_risk_users(
        self,
        threshold: int,
        skip: int,
        limit: int,
        since: Optional[datetime] = None,
    ) -> Tuple[List[dict], int]:
        """
        Group fraud logs by user and keep users whose summed score meets the threshold.

        Returns:
            tuple of (page of {_id, totalRiskScore, logCount, lastDetectedAt}, total users)
        """
        pipeline = self._high_risk_pipeline(threshold, since) + [
            {"$sort": {"totalRiskScore": -1}},
            {"$skip": skip},
            {"$limit": limit},
        ]
        items = await self._bounded(
            self._fraud_logs.aggregate(pipeline).to_list(length=None),
            "aggregate_high_risk_users",
        )
        total = await self.count_high_risk_users(threshold, since)
        return items, total

    async def count_high_risk_users(self, threshold: int, since: Optional[datetime] = None) -> int:
        pipeline = self._high_risk_pipeline(threshold, since) + [{"$count": "total"}]
        counted = await self._bounded(
            self._fraud_logs.aggregate(pipeline).to_list(length=1),
            "count_high_risk_users",
        )
        return counted[0]["total"] if counted else 0

    async def mark_fraud_log_reviewed(self, log_id: str, moderator_id: str) -> Optional[dict]:
        oid = to_object_id(log_id)
        if oid is None:
            return None
        return await self._bounded(
            self._fraud_logs.find_one_and_update(
                {"_id": oid},
                {
                    "$set": {
                        "isReviewed": True,
                        "reviewedBy": to_object_id(moderator_id),
                        "reviewedAt": utc_now(),
                    }
                },
                return_document=ReturnDocument.AFTER,
            ),
            "mark_fraud_log_reviewed",
        )

    # ─────────────────────────────────────────────────────────────────
    # Audit logs and system config
    # ─────────────────────────────────────────────────────────────────

    async def insert_audit_log(self, entry: dict) -> ObjectId:
        result = await self._bounded(
            self._audit_logs.insert_one({**entry, "createdAt": utc_now()}),
            "insert_audit_log",
        )
        return result.inserted_id

    async def get_system_config(self, key: str) -> Optional[Any]:
        doc = await self._bounded(
            self._system_config.find_one({"key": key}),
            "get_system_config",
        )
        return doc.get("value") if doc else None
