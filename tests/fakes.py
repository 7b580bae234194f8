"""In-memory stand-ins for flow-level tests.

FakeCredentialStore mirrors the CredentialStore method surface over plain
lists so pipelines and services can be exercised end to end without a
database.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId

from marketplace.database.credential_store import resolve_role_name, to_object_id
from marketplace.errors import EmailExistsError, PhoneExistsError

ACCESS_SECRET = "test-access-secret"
REFRESH_SECRET = "test-refresh-secret"
STRONG_PASSWORD = "Str0ngPassw0rd"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _copy_user(user: Optional[dict]) -> Optional[dict]:
    if user is None:
        return None
    copied = dict(user)
    copied["role"] = resolve_role_name(copied.get("role"))
    return copied


class FakeCredentialStore:
    def __init__(self, roles=("buyer", "seller", "designer", "moderator", "admin")):
        self.users: List[dict] = []
        self.roles: List[dict] = [{"_id": ObjectId(), "name": name} for name in roles]
        self.refresh_tokens: List[dict] = []
        self.reset_tokens: List[dict] = []
        self.otp_requests: List[dict] = []
        self.device_sessions: List[dict] = []
        self.listings: List[dict] = []
        self.fraud_logs: List[dict] = []
        self.audit_logs: List[dict] = []
        self.system_config: Dict[str, Any] = {}

    # ── seeding helpers ──────────────────────────────────────────────

    def add_listing(
        self,
        user_id: str,
        status: str = "active",
        contact_phone: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
        is_deleted: bool = False,
    ) -> dict:
        now = utc_now()
        listing = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id),
            "status": status,
            "contactPhone": contact_phone,
            "isDeleted": is_deleted,
            "createdAt": created_at or now,
            "updatedAt": updated_at or now,
        }
        self.listings.append(listing)
        return listing

    def raw_user(self, user_id: str) -> Optional[dict]:
        oid = to_object_id(user_id)
        return next((u for u in self.users if u["_id"] == oid), None)

    # ── users and roles ──────────────────────────────────────────────

    async def find_user_by_email(self, email: str) -> Optional[dict]:
        email = email.strip().lower()
        return _copy_user(next((u for u in self.users if u["email"] == email), None))

    async def find_user_by_phone(self, phone: str) -> Optional[dict]:
        return _copy_user(next((u for u in self.users if u.get("phone") == phone), None))

    async def find_user_by_id(self, user_id: str) -> Optional[dict]:
        return _copy_user(self.raw_user(user_id))

    async def find_role_by_name(self, name: str) -> Optional[dict]:
        return next((r for r in self.roles if r["name"] == name), None)

    async def create_user(
        self,
        email: str,
        name: str,
        role: dict,
        password_hash: Optional[str] = None,
        phone: Optional[str] = None,
        is_verified: bool = False,
    ) -> dict:
        email = email.strip().lower()
        if any(u["email"] == email for u in self.users):
            raise EmailExistsError()
        if phone and any(u.get("phone") == phone for u in self.users):
            raise PhoneExistsError()

        now = utc_now()
        user = {
            "_id": ObjectId(),
            "email": email,
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
            user["phone"] = phone
        self.users.append(user)
        return _copy_user(user)

    async def update_user(self, user_id: str, fields: dict) -> bool:
        user = self.raw_user(user_id)
        if user is None:
            return False
        user.update(fields)
        user["updatedAt"] = utc_now()
        return True

    async def set_last_login(self, user_id: str) -> bool:
        return await self.update_user(user_id, {"lastLoginAt": utc_now()})

    async def set_password_hash(self, user_id: str, password_hash: str) -> bool:
        return await self.update_user(user_id, {"passwordHash": password_hash})

    async def set_posting_permission(self, user_id: str, allowed: bool) -> bool:
        return await self.update_user(user_id, {"canPostListings": allowed})

    async def find_user_summaries(self, user_ids: List[ObjectId]) -> Dict[str, dict]:
        wanted = {to_object_id(i) for i in user_ids}
        return {str(u["_id"]): dict(u) for u in self.users if u["_id"] in wanted}

    # ── refresh tokens ───────────────────────────────────────────────

    async def insert_refresh_token(self, user_id: str, token_hash: str, expires_at: datetime) -> ObjectId:
        doc = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id),
            "tokenHash": token_hash,
            "expiresAt": expires_at,
            "revokedAt": None,
            "createdAt": utc_now(),
        }
        self.refresh_tokens.append(doc)
        return doc["_id"]

    def _live_refresh(self, token_hash: str) -> Optional[dict]:
        now = utc_now()
        return next(
            (
                t for t in self.refresh_tokens
                if t["tokenHash"] == token_hash and t["revokedAt"] is None and t["expiresAt"] > now
            ),
            None,
        )

    async def revoke_live_refresh_token(self, token_hash: str) -> Optional[dict]:
        token = self._live_refresh(token_hash)
        if token is None:
            return None
        token["revokedAt"] = utc_now()
        return dict(token)

    async def revoke_refresh_token(self, token_hash: str) -> bool:
        token = next(
            (t for t in self.refresh_tokens if t["tokenHash"] == token_hash and t["revokedAt"] is None),
            None,
        )
        if token is None:
            return False
        token["revokedAt"] = utc_now()
        return True

    async def revoke_all_refresh_tokens(self, user_id: str) -> int:
        count = 0
        for token in self.refresh_tokens:
            if token["userId"] == ObjectId(user_id) and token["revokedAt"] is None:
                token["revokedAt"] = utc_now()
                count += 1
        return count

    # ── password-reset tokens ────────────────────────────────────────

    async def invalidate_reset_tokens(self, user_id: str) -> int:
        count = 0
        for token in self.reset_tokens:
            if token["userId"] == ObjectId(user_id) and token["usedAt"] is None:
                token["usedAt"] = utc_now()
                count += 1
        return count

    async def insert_reset_token(self, user_id: str, token_hash: str, expires_at: datetime) -> ObjectId:
        doc = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id),
            "tokenHash": token_hash,
            "expiresAt": expires_at,
            "usedAt": None,
            "createdAt": utc_now(),
        }
        self.reset_tokens.append(doc)
        return doc["_id"]

    async def find_active_reset_token(self, token_hash: str) -> Optional[dict]:
        now = utc_now()
        token = next(
            (
                t for t in self.reset_tokens
                if t["tokenHash"] == token_hash and t["usedAt"] is None and t["expiresAt"] > now
            ),
            None,
        )
        return dict(token) if token else None

    async def mark_reset_token_used(self, token_id: ObjectId) -> bool:
        token = next((t for t in self.reset_tokens if t["_id"] == token_id), None)
        if token is None or token["usedAt"] is not None:
            return False
        token["usedAt"] = utc_now()
        return True

    async def release_reset_token(self, token_id: ObjectId) -> bool:
        token = next((t for t in self.reset_tokens if t["_id"] == token_id), None)
        if token is None or token["usedAt"] is None:
            return False
        token["usedAt"] = None
        return True

    # ── OTP requests ─────────────────────────────────────────────────

    def _otps(self, channel: str, destination: str) -> List[dict]:
        matching = [
            r for r in self.otp_requests
            if r["channel"] == channel and r["destination"] == destination
        ]
        return sorted(matching, key=lambda r: r["createdAt"], reverse=True)

    def _pending(self, channel: str, destination: str) -> List[dict]:
        now = utc_now()
        return [
            r for r in self._otps(channel, destination)
            if r["verifiedAt"] is None and r["expiresAt"] > now
        ]

    async def find_latest_otp_since(self, channel: str, destination: str, since: datetime) -> Optional[dict]:
        return next((r for r in self._otps(channel, destination) if r["createdAt"] >= since), None)

    async def insert_otp_request(
        self,
        channel: str,
        destination: str,
        code_hash: str,
        expires_at: datetime,
        user_id: Optional[str] = None,
    ) -> dict:
        doc = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id) if user_id else None,
            "channel": channel,
            "destination": destination,
            "codeHash": code_hash,
            "expiresAt": expires_at,
            "verifiedAt": None,
            "attempts": 0,
            "createdAt": utc_now(),
        }
        self.otp_requests.append(doc)
        return doc

    async def find_matching_otp(
        self,
        channel: str,
        destination: str,
        code_hash: str,
        max_attempts: int,
    ) -> Optional[dict]:
        return next(
            (
                r for r in self._pending(channel, destination)
                if r["codeHash"] == code_hash and r["attempts"] < max_attempts
            ),
            None,
        )

    async def increment_latest_otp_attempts(self, channel: str, destination: str) -> Optional[dict]:
        pending = self._pending(channel, destination)
        if not pending:
            return None
        pending[0]["attempts"] += 1
        return dict(pending[0])

    async def mark_otp_verified(self, request_id: ObjectId) -> bool:
        request = next((r for r in self.otp_requests if r["_id"] == request_id), None)
        if request is None or request["verifiedAt"] is not None:
            return False
        request["verifiedAt"] = utc_now()
        return True

    async def expire_pending_otps(self, channel: str, destination: str) -> int:
        pending = self._pending(channel, destination)
        now = utc_now()
        for request in pending:
            request["expiresAt"] = now
        return len(pending)

    # ── device sessions ──────────────────────────────────────────────

    async def record_device_session(self, user_id: str, ip_address: str, user_agent: str, device: dict) -> dict:
        now = utc_now()
        for session in self.device_sessions:
            if (
                session["userId"] == ObjectId(user_id)
                and session["ipAddress"] == ip_address
                and session["userAgent"] == user_agent
                and session["revokedAt"] is None
            ):
                session["lastSeenAt"] = now
                return dict(session)

        session = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id),
            "ipAddress": ip_address,
            "userAgent": user_agent,
            "device": device,
            "revokedAt": None,
            "createdAt": now,
            "lastSeenAt": now,
        }
        self.device_sessions.append(session)
        return dict(session)

    async def count_device_sessions_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for s in self.device_sessions
            if s["userId"] == ObjectId(user_id) and s["createdAt"] >= since
        )

    async def list_device_sessions(self, user_id: str) -> List[dict]:
        sessions = [
            dict(s) for s in self.device_sessions
            if s["userId"] == ObjectId(user_id) and s["revokedAt"] is None
        ]
        return sorted(sessions, key=lambda s: s["lastSeenAt"], reverse=True)

    async def revoke_device_session(self, user_id: str, session_id: str) -> bool:
        oid = to_object_id(session_id)
        for session in self.device_sessions:
            if session["_id"] == oid and session["userId"] == ObjectId(user_id) and session["revokedAt"] is None:
                session["revokedAt"] = utc_now()
                return True
        return False

    async def aggregate_device_counts(self, since: datetime, more_than: int) -> List[dict]:
        counts: Dict[ObjectId, int] = {}
        for session in self.device_sessions:
            if session["createdAt"] >= since:
                counts[session["userId"]] = counts.get(session["userId"], 0) + 1
        return [{"_id": k, "count": v} for k, v in counts.items() if v > more_than]

    # ── listings ─────────────────────────────────────────────────────

    async def find_listing(self, listing_id: str) -> Optional[dict]:
        oid = to_object_id(listing_id)
        return next((dict(l) for l in self.listings if l["_id"] == oid), None)

    async def count_listings_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for l in self.listings
            if l["userId"] == ObjectId(user_id) and l["createdAt"] >= since
        )

    async def count_other_users_with_phone(self, phone: str, user_id: str) -> int:
        return len({
            l["userId"] for l in self.listings
            if l["contactPhone"] == phone
            and l["userId"] != ObjectId(user_id)
            and not l["isDeleted"]
        })

    async def count_rejected_listings_since(self, user_id: str, since: datetime) -> int:
        return sum(
            1 for l in self.listings
            if l["userId"] == ObjectId(user_id)
            and l["status"] == "rejected"
            and l["updatedAt"] >= since
        )

    async def aggregate_rejection_counts(self, since: datetime, at_least: int) -> List[dict]:
        counts: Dict[ObjectId, int] = {}
        for listing in self.listings:
            if listing["status"] == "rejected" and listing["updatedAt"] >= since:
                counts[listing["userId"]] = counts.get(listing["userId"], 0) + 1
        return [{"_id": k, "count": v} for k, v in counts.items() if v >= at_least]

    # ── fraud logs ───────────────────────────────────────────────────

    async def insert_fraud_log(self, user_id: str, log_type: str, details: dict, risk_score: int) -> dict:
        doc = {
            "_id": ObjectId(),
            "userId": ObjectId(user_id),
            "type": log_type,
            "details": details,
            "riskScore": risk_score,
            "isReviewed": False,
            "createdAt": utc_now(),
        }
        self.fraud_logs.append(doc)
        return doc

    def _matches(self, log: dict, query: dict) -> bool:
        for key, expected in query.items():
            if isinstance(expected, dict) and "$gte" in expected:
                if log.get(key) is None or log[key] < expected["$gte"]:
                    return False
            elif log.get(key) != expected:
                return False
        return True

    async def find_fraud_logs(self, query: dict, skip: int, limit: int) -> Tuple[List[dict], int]:
        matching = sorted(
            (l for l in self.fraud_logs if self._matches(l, query)),
            key=lambda l: l["createdAt"],
            reverse=True,
        )
        return [dict(l) for l in matching[skip:skip + limit]], len(matching)

    async def has_fraud_log_since(self, user_id: Any, log_type: str, since: datetime) -> bool:
        oid = to_object_id(user_id)
        return any(
            l["userId"] == oid and l["type"] == log_type and l["createdAt"] >= since
            for l in self.fraud_logs
        )

    def _high_risk_groups(self, threshold: int, since: Optional[datetime]) -> List[dict]:
        groups: Dict[ObjectId, dict] = {}
        for log in self.fraud_logs:
            if since is not None and log["createdAt"] < since:
                continue
            group = groups.setdefault(
                log["userId"],
                {"_id": log["userId"], "totalRiskScore": 0, "logCount": 0, "lastDetectedAt": log["createdAt"]},
            )
            group["totalRiskScore"] += log["riskScore"]
            group["logCount"] += 1
            group["lastDetectedAt"] = max(group["lastDetectedAt"], log["createdAt"])
        kept = [g for g in groups.values() if g["totalRiskScore"] >= threshold]
        return sorted(kept, key=lambda g: g["totalRiskScore"], reverse=True)

    async def aggregate_high_risk_users(
        self,
        threshold: int,
        skip: int,
        limit: int,
        since: Optional[datetime] = None,
    ) -> Tuple[List[dict], int]:
        groups = self._high_risk_groups(threshold, since)
        return groups[skip:skip + limit], len(groups)

    async def count_high_risk_users(self, threshold: int, since: Optional[datetime] = None) -> int:
        return len(self._high_risk_groups(threshold, since))

    async def mark_fraud_log_reviewed(self, log_id: str, moderator_id: str) -> Optional[dict]:
        oid = to_object_id(log_id)
        log = next((l for l in self.fraud_logs if l["_id"] == oid), None)
        if log is None:
            return None
        log.update({
            "isReviewed": True,
            "reviewedBy": to_object_id(moderator_id),
            "reviewedAt": utc_now(),
        })
        return dict(log)

    # ── audit logs and system config ─────────────────────────────────

    async def insert_audit_log(self, entry: dict) -> ObjectId:
        doc = {**entry, "_id": ObjectId(), "createdAt": utc_now()}
        self.audit_logs.append(doc)
        return doc["_id"]

    async def get_system_config(self, key: str) -> Optional[Any]:
        return self.system_config.get(key)

    def audit_actions(self) -> List[str]:
        return [entry["action"] for entry in self.audit_logs]


def hours_ago(hours: float) -> datetime:
    return utc_now() - timedelta(hours=hours)
