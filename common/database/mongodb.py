"""
MongoDB connection manager using Motor.

Owns the client for the process. Collections are handed out by the
application layer (CredentialStore), not here.

Example:
    from common.database import MongoDB

    main_db = MongoDB()
    await main_db.connect(uri="mongodb://localhost:27017", database_name="marketplace")
    store = CredentialStore(main_db.db)
"""

import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


def _redact(uri: str) -> str:
    # Drop "user:password@" from the URI
    return uri.split("@")[-1] if "@" in uri else uri


class MongoDB:
    """Single Motor client plus the selected database."""

    def __init__(self):
        self._client: Optional[AsyncIOMotorClient] = None
        self._database_name: Optional[str] = None

    async def connect(
        self,
        uri: str,
        database_name: str,
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        """
        Connect and fail fast when no server answers.

        Datetimes come back timezone-aware (UTC) so expiry comparisons
        never mix naive and aware values.
        """
        logger.info(f"Connecting to MongoDB at {_redact(uri)}, database {database_name}")

        client = AsyncIOMotorClient(
            uri,
            serverSelectionTimeoutMS=server_selection_timeout_ms,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
        except PyMongoError as e:
            logger.error(f"MongoDB is unreachable: {e}")
            client.close()
            raise

        self._client = client
        self._database_name = database_name
        logger.info("MongoDB connected")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        logger.info(f"MongoDB connection to {self._database_name} closed")

    async def ping(self) -> bool:
        """True when connected and the server answers a ping."""
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False
        return True

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._client is None or self._database_name is None:
            raise RuntimeError("Database not connected")
        return self._client[self._database_name]
