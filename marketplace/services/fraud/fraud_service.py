"""
Rule-based fraud risk engine.

Rules fire on three triggers (listing created, listing rejected, login)
and each writes an append-only fraud log with a fixed risk weight.

| Rule               | Trigger          | Weight |
|--------------------|------------------|--------|
| TOO_MANY_LISTINGS  | listing created  | 40     |
| REPEATED_PHONE     | listing created  | 50     |
| REPEATED_REJECTION | listing rejected | 35     |
| MANY_DEVICES       | login            | 30     |

A user whose triggered weights sum to the risk threshold is flagged
(HIGH_RISK_USER log, audit record, moderator notification) but not
blocked. Posting permission is only revoked by the rejection rule once
the rejection count reaches twice its threshold.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from common.utils.responses import pagination_meta
from marketplace.database.credential_store import CredentialStore, to_object_id
from marketplace.errors import FraudLogNotFoundError
from marketplace.serializers import format_fraud_log, iso
from marketplace.services.audit import AuditAction, AuditService
from marketplace.services.notifications import NotificationService
from marketplace.services.tasks import BackgroundTaskRunner

logger = logging.getLogger(__name__)


class FraudRule:
    TOO_MANY_LISTINGS = "TOO_MANY_LISTINGS"
    REPEATED_PHONE = "REPEATED_PHONE"
    REPEATED_REJECTION = "REPEATED_REJECTION"
    MANY_DEVICES = "MANY_DEVICES"
    HIGH_RISK_USER = "HIGH_RISK_USER"

    ALL = (
        TOO_MANY_LISTINGS,
        REPEATED_PHONE,
        REPEATED_REJECTION,
        MANY_DEVICES,
        HIGH_RISK_USER,
    )


RULE_WEIGHTS = {
    FraudRule.TOO_MANY_LISTINGS: 40,
    FraudRule.REPEATED_PHONE: 50,
    FraudRule.REPEATED_REJECTION: 35,
    FraudRule.MANY_DEVICES: 30,
}

LISTING_WINDOW = timedelta(hours=1)
REJECTION_WINDOW = timedelta(days=7)
DEVICE_WINDOW = timedelta(hours=24)

SWEEP_REJECTION_WINDOW = timedelta(days=30)
SWEEP_DEDUP_WINDOW = timedelta(days=1)
SWEEP_HIGH_RISK_WINDOW = timedelta(days=30)

MODERATOR_ROLES = ["moderator", "admin"]


class FraudService:
    """
    Evaluates fraud rules and serves the operator query surface.
    """

    def __init__(
        self,
        store: CredentialStore,
        audit_service: AuditService,
        notification_service: NotificationService,
        runner: BackgroundTaskRunner,
        max_listings_per_hour: int = 10,
        max_devices_per_day: int = 5,
        max_rejections: int = 3,
        risk_threshold: int = 70,
    ):
        """
        Initialize FraudService.

        Args:
            store: Credential store accessor
            audit_service: Audit trail writer
            notification_service: Moderator notifications on flagging
            runner: Background runner for notifications
            max_listings_per_hour: TOO_MANY_LISTINGS fires above this count
            max_devices_per_day: MANY_DEVICES fires above this count
            max_rejections: REPEATED_REJECTION fires at this count
            risk_threshold: Summed score at which a user is flagged
        """
        self._store = store
        self._audit_service = audit_service
        self._notification_service = notification_service
        self._runner = runner
        self._max_listings_per_hour = max_listings_per_hour
        self._max_devices_per_day = max_devices_per_day
        self._max_rejections = max_rejections
        self._risk_threshold = risk_threshold

    @property
    def risk_threshold(self) -> int:
        return self._risk_threshold

    # ─────────────────────────────────────────────────────────────────
    # Triggers
    # ─────────────────────────────────────────────────────────────────

    async def on_listing_created(self, user_id: str, listing_id: str) -> List[dict]:
        """
        Run the listing-created rules and flag the user if their weights add up.

        Returns:
            Fraud logs written by the rules that fired
        """
        results = []

        too_many = await self.check_too_many_listings(user_id)
        if too_many:
            results.append(too_many)

        repeated_phone = await self.check_repeated_phone(user_id, listing_id)
        if repeated_phone:
            results.append(repeated_phone)

        if results:
            total_risk_score = sum(r["riskScore"] for r in results)
            if total_risk_score >= self._risk_threshold:
                await self.flag_high_risk_user(user_id, total_risk_score)

        return results

    async def on_listing_rejected(self, user_id: str) -> Optional[dict]:
        """Run the rejection rule; flag the user if its weight alone reaches the threshold."""
        repeated_rejection = await self.check_repeated_rejection(user_id)

        if repeated_rejection and repeated_rejection["riskScore"] >= self._risk_threshold:
            await self.flag_high_risk_user(user_id, repeated_rejection["riskScore"])

        return repeated_rejection

    # ─────────────────────────────────────────────────────────────────
    # Rules
    # ─────────────────────────────────────────────────────────────────

    async def check_too_many_listings(self, user_id: str) -> Optional[dict]:
        since = datetime.now(timezone.utc) - LISTING_WINDOW
        listing_count = await self._store.count_listings_since(user_id, since)

        if listing_count <= self._max_listings_per_hour:
            return None

        return await self._log_fraud(
            user_id,
            FraudRule.TOO_MANY_LISTINGS,
            {
                "listingCount": listing_count,
                "threshold": self._max_listings_per_hour,
                "period": "1 hour",
            },
        )

    async def check_repeated_phone(self, user_id: str, listing_id: str) -> Optional[dict]:
        listing = await self._store.find_listing(listing_id)
        contact_phone = listing.get("contactPhone") if listing else None
        if not contact_phone:
            return None

        other_user_count = await self._store.count_other_users_with_phone(contact_phone, user_id)
        if other_user_count == 0:
            return None

        return await self._log_fraud(
            user_id,
            FraudRule.REPEATED_PHONE,
            {
                "phone": contact_phone[-4:],
                "otherUserCount": other_user_count,
                "listingId": str(listing_id),
            },
        )

    async def check_repeated_rejection(self, user_id: str) -> Optional[dict]:
        since = datetime.now(timezone.utc) - REJECTION_WINDOW
        rejected_count = await self._store.count_rejected_listings_since(user_id, since)

        if rejected_count < self._max_rejections:
            return None

        fraud_log = await self._log_fraud(
            user_id,
            FraudRule.REPEATED_REJECTION,
            {
                "rejectedCount": rejected_count,
                "threshold": self._max_rejections,
                "period": "7 days",
            },
        )

        if rejected_count >= self._max_rejections * 2:
            await self.restrict_posting(user_id, rejected_count)

        return fraud_log

    async def check_many_devices(self, user_id: str) -> Optional[dict]:
        since = datetime.now(timezone.utc) - DEVICE_WINDOW
        device_count = await self._store.count_device_sessions_since(user_id, since)

        if device_count <= self._max_devices_per_day:
            return None

        return await self._log_fraud(
            user_id,
            FraudRule.MANY_DEVICES,
            {
                "deviceCount": device_count,
                "threshold": self._max_devices_per_day,
                "period": "24 hours",
            },
        )

    # ─────────────────────────────────────────────────────────────────
    # Actions
    # ─────────────────────────────────────────────────────────────────

    async def restrict_posting(self, user_id: str, rejected_count: int) -> None:
        await self._store.set_posting_permission(user_id, False)

        await self._audit_service.log(
            AuditAction.POSTING_RESTRICTED,
            entity_type="user",
            entity_id=user_id,
            metadata={"rejectedCount": rejected_count},
            ip_address="system",
        )

        self._runner.submit(
            "posting_restricted_notification",
            self._notification_service.create_notification,
            user_id,
            "posting_restricted",
            "Posting restricted",
            "Your ability to post listings has been restricted after repeated rejections.",
        )

        logger.warning(f"User {user_id} posting restricted after {rejected_count} rejections")

    async def flag_high_risk_user(self, user_id: str, total_risk_score: int) -> dict:
        """
        Record that a user crossed the risk threshold.

        Writes a HIGH_RISK_USER log at the total score and an audit record,
        and notifies moderators in the background. The user is not blocked.
        """
        fraud_log = await self._log_fraud(
            user_id,
            FraudRule.HIGH_RISK_USER,
            {
                "totalRiskScore": total_risk_score,
                "threshold": self._risk_threshold,
                "action": "flagged",
            },
            risk_score=total_risk_score,
        )

        await self._audit_service.log(
            AuditAction.USER_FLAGGED_HIGH_RISK,
            actor_user_id=user_id,
            entity_type="user",
            entity_id=user_id,
            metadata={"totalRiskScore": total_risk_score},
            ip_address="system",
        )

        self._runner.submit(
            "fraud_alert_notification",
            self._notification_service.notify_roles,
            MODERATOR_ROLES,
            "fraud_alert",
            "High-risk user flagged",
            f"User {user_id} reached a risk score of {total_risk_score}.",
            {"userId": user_id, "totalRiskScore": total_risk_score},
        )

        logger.warning(f"User {user_id} flagged as high risk (score {total_risk_score})")
        return fraud_log

    async def _log_fraud(
        self,
        user_id: str,
        rule: str,
        details: dict,
        risk_score: Optional[int] = None,
    ) -> dict:
        score = risk_score if risk_score is not None else RULE_WEIGHTS[rule]
        fraud_log = await self._store.insert_fraud_log(str(user_id), rule, details, score)
        logger.warning(f"Fraud detected for user {user_id}: {rule} (score {score})")
        return fraud_log

    # ─────────────────────────────────────────────────────────────────
    # Operator queries
    # ─────────────────────────────────────────────────────────────────

    async def get_all_fraud_logs(
        self,
        page: int = 1,
        limit: int = 20,
        log_type: Optional[str] = None,
        min_risk_score: Optional[int] = None,
    ) -> dict:
        """List fraud logs, newest first, optionally filtered by type and minimum score."""
        query: dict = {}
        if log_type:
            query["type"] = log_type
        if min_risk_score is not None:
            query["riskScore"] = {"$gte": min_risk_score}

        logs, total = await self._store.find_fraud_logs(query, (page - 1) * limit, limit)

        users = await self._store.find_user_summaries(
            list({log["userId"] for log in logs if log.get("userId")})
        )
        items = []
        for log in logs:
            item = format_fraud_log(log)
            item["user"] = _user_summary(users.get(str(log.get("userId"))))
            items.append(item)

        return {"items": items, "pagination": pagination_meta(page, limit, total)}

    async def get_user_fraud_logs(self, user_id: str, page: int = 1, limit: int = 20) -> dict:
        oid = to_object_id(user_id)
        if oid is None:
            return {"items": [], "pagination": pagination_meta(page, limit, 0)}

        logs, total = await self._store.find_fraud_logs({"userId": oid}, (page - 1) * limit, limit)
        return {
            "items": [format_fraud_log(log) for log in logs],
            "pagination": pagination_meta(page, limit, total),
        }

    async def get_high_risk_users(self, page: int = 1, limit: int = 20) -> dict:
        """Users whose summed risk score meets the threshold, highest first."""
        groups, total = await self._store.aggregate_high_risk_users(
            self._risk_threshold,
            skip=(page - 1) * limit,
            limit=limit,
        )

        users = await self._store.find_user_summaries([g["_id"] for g in groups])
        items = []
        for group in groups:
            user = users.get(str(group["_id"]))
            if not user:
                continue
            items.append({
                "user": _user_summary(user),
                "totalRiskScore": group["totalRiskScore"],
                "fraudEventCount": group["logCount"],
                "lastDetectedAt": iso(group.get("lastDetectedAt")),
            })

        return {"items": items, "pagination": pagination_meta(page, limit, total)}

    async def mark_as_reviewed(self, log_id: str, moderator_id: str) -> dict:
        """
        Mark a fraud log reviewed and audit it.

        Raises:
            FraudLogNotFoundError: Unknown log id
        """
        fraud_log = await self._store.mark_fraud_log_reviewed(log_id, moderator_id)
        if not fraud_log:
            raise FraudLogNotFoundError()

        await self._audit_service.log(
            AuditAction.FRAUD_LOG_REVIEWED,
            actor_user_id=moderator_id,
            entity_type="fraudLog",
            entity_id=log_id,
        )

        logger.info(f"Fraud log {log_id} reviewed by {moderator_id}")
        return format_fraud_log(fraud_log)

    # ─────────────────────────────────────────────────────────────────
    # Scheduled sweep
    # ─────────────────────────────────────────────────────────────────

    async def run_sweep(self) -> dict:
        """
        Re-derive device and rejection anomalies over longer windows.

        A candidate is skipped when a log of the same type already exists
        for the user within the last day, so re-running is harmless.

        Returns:
            dict with counts of candidates, logs written, and high-risk users
        """
        now = datetime.now(timezone.utc)
        dedup_since = now - SWEEP_DEDUP_WINDOW

        device_candidates = await self._store.aggregate_device_counts(
            now - DEVICE_WINDOW, self._max_devices_per_day
        )
        devices_logged = 0
        for candidate in device_candidates:
            if await self._store.has_fraud_log_since(candidate["_id"], FraudRule.MANY_DEVICES, dedup_since):
                continue
            await self._log_fraud(
                candidate["_id"],
                FraudRule.MANY_DEVICES,
                {
                    "deviceCount": candidate["count"],
                    "period": "24 hours",
                    "detectedBy": "scheduled_analysis",
                },
            )
            devices_logged += 1

        rejection_candidates = await self._store.aggregate_rejection_counts(
            now - SWEEP_REJECTION_WINDOW, self._max_rejections
        )
        rejections_logged = 0
        for candidate in rejection_candidates:
            if await self._store.has_fraud_log_since(candidate["_id"], FraudRule.REPEATED_REJECTION, dedup_since):
                continue
            await self._log_fraud(
                candidate["_id"],
                FraudRule.REPEATED_REJECTION,
                {
                    "rejectedCount": candidate["count"],
                    "period": "30 days",
                    "detectedBy": "scheduled_analysis",
                },
            )
            rejections_logged += 1

        high_risk_users = await self._store.count_high_risk_users(
            self._risk_threshold,
            since=now - SWEEP_HIGH_RISK_WINDOW,
        )

        results = {
            "suspiciousDeviceUsers": len(device_candidates),
            "deviceLogsWritten": devices_logged,
            "usersWithRejections": len(rejection_candidates),
            "rejectionLogsWritten": rejections_logged,
            "highRiskUsers": high_risk_users,
        }
        logger.info(f"Fraud sweep completed: {results}")
        return results


def _user_summary(user: Optional[dict]) -> Optional[dict]:
    if not user:
        return None
    return {
        "id": str(user["_id"]),
        "name": user.get("name"),
        "email": user.get("email"),
        "isBlocked": user.get("isBlocked", False),
        "canPostListings": user.get("canPostListings", True),
    }
