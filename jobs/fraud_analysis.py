"""
Scheduled fraud analysis job.

Re-derives device and rejection anomalies over longer windows than the
event-driven checks and reports how many users are currently high risk.
Re-running within a day does not write duplicate logs.

Usage:
    Run via CRON:
        0 * * * * cd /path/to/project && python -m jobs.fraud_analysis

    Or run directly:
        python -m jobs.fraud_analysis
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorClient

from marketplace.config import Settings, settings
from marketplace.database.credential_store import CredentialStore
from marketplace.services.audit import AuditService
from marketplace.services.fraud import FraudService
from marketplace.services.notifications import NotificationService
from marketplace.services.tasks import BackgroundTaskRunner

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class FraudAnalysisJob:
    """
    Runs the fraud sweep against the application database.

    Actions performed:
    1. Finds users with more device sessions in the last 24 hours than allowed
    2. Finds users with too many rejected listings in the last 30 days
    3. Writes a fraud log for each, unless one of the same type exists from the last day
    4. Counts users whose summed risk score over 30 days meets the threshold
    """

    def __init__(self, db_uri: str, db_name: str, job_settings: Settings = settings):
        """
        Initialize the fraud analysis job.

        Args:
            db_uri: MongoDB URI for the application database
            db_name: Application database name
            job_settings: Fraud thresholds and store timeout
        """
        self._client = AsyncIOMotorClient(db_uri, tz_aware=True)
        db = self._client[db_name]

        store = CredentialStore(db, timeout=job_settings.DB_OPERATION_TIMEOUT_SECONDS)
        self._runner = BackgroundTaskRunner()
        self._fraud_service = FraudService(
            store=store,
            audit_service=AuditService(store),
            notification_service=NotificationService(db),
            runner=self._runner,
            max_listings_per_hour=job_settings.FRAUD_MAX_LISTINGS_PER_HOUR,
            max_devices_per_day=job_settings.FRAUD_MAX_DEVICES_PER_DAY,
            max_rejections=job_settings.FRAUD_MAX_REJECTIONS_COUNT,
            risk_threshold=job_settings.FRAUD_RISK_THRESHOLD,
        )

    async def run(self) -> Dict[str, Any]:
        """
        Execute the fraud analysis job.

        Returns:
            Dict with sweep counts, timing, and any errors
        """
        logger.info("Starting fraud analysis job")
        start_time = datetime.now(timezone.utc)

        results: Dict[str, Any] = {
            "startTime": start_time.isoformat(),
            "errors": [],
        }

        try:
            results.update(await self._fraud_service.run_sweep())
        except Exception as e:
            error_msg = f"Job failed: {str(e)}"
            logger.error(error_msg)
            results["errors"].append(error_msg)

        # Notifications queued by the sweep
        await self._runner.drain()

        results["endTime"] = datetime.now(timezone.utc).isoformat()
        results["durationSeconds"] = (
            datetime.now(timezone.utc) - start_time
        ).total_seconds()

        logger.info(
            f"Fraud analysis job completed. "
            f"High-risk users: {results.get('highRiskUsers', 0)}, "
            f"Errors: {len(results['errors'])}"
        )

        return results

    async def close(self):
        """Close database connections."""
        self._client.close()


async def main():
    """Main entry point for the fraud analysis job."""
    job = FraudAnalysisJob(
        db_uri=settings.MONGODB_URI,
        db_name=settings.MONGODB_DATABASE,
    )

    try:
        results = await job.run()

        print("\n=== Fraud Analysis Job Results ===")
        print(f"Start Time: {results['startTime']}")
        print(f"End Time: {results['endTime']}")
        print(f"Duration: {results['durationSeconds']:.2f} seconds")
        print(f"Suspicious Device Users: {results.get('suspiciousDeviceUsers', 0)}")
        print(f"Device Logs Written: {results.get('deviceLogsWritten', 0)}")
        print(f"Users With Rejections: {results.get('usersWithRejections', 0)}")
        print(f"Rejection Logs Written: {results.get('rejectionLogsWritten', 0)}")
        print(f"High-Risk Users: {results.get('highRiskUsers', 0)}")

        if results["errors"]:
            print(f"\nErrors ({len(results['errors'])}):")
            for error in results["errors"]:
                print(f"  - {error}")

        exit_code = 1 if results["errors"] else 0
        sys.exit(exit_code)

    finally:
        await job.close()


if __name__ == "__main__":
    asyncio.run(main())
