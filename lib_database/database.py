"""
MongoDB Database Connection Module
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient

from app.config import MONGODB_URI, MONGODB_DATABASE

logger = logging.getLogger(__name__)


class Database:
    """
    MongoDB database connection manager using Motor (async driver).
    """

    def __init__(self, connection_string: Optional[str] = None, database_name: Optional[str] = None):
        """
        Initialize database connection settings.

        Args:
            connection_string: MongoDB connection string. Defaults to MONGODB_URI.
            database_name: Database name. Defaults to MONGODB_DATABASE.
        """
        self.connection_string = connection_string or MONGODB_URI
        if not self.connection_string:
            raise ValueError("MONGODB_URI environment variable is required")
        self.client: Optional[AsyncIOMotorClient] = None
        self.db = None
        self.database_name = database_name or MONGODB_DATABASE

    async def connect(self) -> bool:
        """
        Establish connection to MongoDB and make sure indexes exist.
        """
        try:
            self.client = AsyncIOMotorClient(self.connection_string)
            self.db = self.client[self.database_name]

            await self.client.admin.command('ping')
            logger.info("[Database] Connected to MongoDB database: %s", self.database_name)

            await self._create_indexes()
            return True
        except Exception as e:
            logger.error("[Database] MongoDB connection failed: %s", e)
            return False

    async def _create_indexes(self):
        """
        Create the indexes the ledger relies on.

        The unique (user_id, date) index on minutes_usage backs the atomic
        additive upsert: two racing first-inserts cannot both create a row.
        """
        try:
            await self.users.create_index("email", unique=True)
            await self.users.create_index("role")

            await self.minutes_usage.create_index([("user_id", 1), ("date", 1)], unique=True)
            await self.minutes_usage.create_index("date")

            await self.tts_usage.create_index([("user_id", 1), ("created_at", 1)])

            await self.api_configs.create_index("config_key", unique=True)

            await self.student_levels.create_index("user_id", unique=True)

            logger.info("[Database] MongoDB indexes created")
        except Exception as e:
            logger.warning("[Database] Index creation warning: %s", e)

    async def disconnect(self):
        """
        Close MongoDB connection.
        """
        if self.client:
            self.client.close()
            logger.info("[Database] MongoDB connection closed")

    def get_collection(self, collection_name: str):
        """
        Get a collection from the database.

        Args:
            collection_name: Name of the collection

        Returns:
            MongoDB collection object
        """
        if self.db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self.db[collection_name]

    @property
    def users(self):
        """Get users collection."""
        return self.get_collection("users")

    @property
    def minutes_usage(self):
        """Get per-day conversation minutes ledger."""
        return self.get_collection("minutes_usage")

    @property
    def tts_usage(self):
        """Get per-call TTS ledger."""
        return self.get_collection("tts_usage")

    @property
    def api_configs(self):
        """Get admin-editable configuration collection."""
        return self.get_collection("api_configs")

    @property
    def student_levels(self):
        """Get per-student CEFR level collection."""
        return self.get_collection("student_levels")
