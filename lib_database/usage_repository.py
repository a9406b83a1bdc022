"""
Usage Repository - ledger storage for conversation minutes and TTS calls.
"""
import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Dict, Optional

from pymongo.errors import DuplicateKeyError

from lib_database.database import Database
from lib_database.models import MinutesLedgerEntry, TTSLedgerEntry, ApiConfig

logger = logging.getLogger(__name__)


def today() -> date:
    """Current calendar day in server-local time."""
    return date.today()


def month_start(day: Optional[date] = None) -> date:
    """First day of the month containing `day` (defaults to today)."""
    day = day or today()
    return day.replace(day=1)


def next_month_start(start: date) -> date:
    """First day of the month after the one starting at `start`."""
    if start.month == 12:
        return date(start.year + 1, 1, 1)
    return date(start.year, start.month + 1, 1)


def _day_bounds(day: date):
    """ISO timestamp bounds [start, end) of a calendar day."""
    start = datetime.combine(day, datetime.min.time())
    return start.isoformat(), (start + timedelta(days=1)).isoformat()


class UsageRepository:
    """
    Repository for the minutes and TTS ledgers plus admin configuration.

    This is the store interface the metering core depends on.
    """

    def __init__(self, database: Database):
        """
        Initialize repository with database connection.

        Args:
            database: Connected Database instance
        """
        self.db = database

    # ==================== COLLECTION ACCESSORS ====================

    @property
    def minutes_usage(self):
        return self.db.get_collection("minutes_usage")

    @property
    def tts_usage(self):
        return self.db.get_collection("tts_usage")

    @property
    def api_configs(self):
        return self.db.get_collection("api_configs")

    # ==================== MINUTES LEDGER ====================

    async def _sum_minutes(self, match: dict) -> float:
        pipeline = [
            {"$match": match},
            {"$group": {"_id": None, "total": {"$sum": "$minutes_used"}}},
        ]
        async for row in self.minutes_usage.aggregate(pipeline):
            return float(row.get("total") or 0)
        return 0.0

    async def get_monthly_minute_total(self, user_id: str, start: date) -> float:
        """
        Sum of minutes recorded for a user in the calendar month beginning at `start`.

        Args:
            user_id: User identifier
            start: First day of the month

        Returns:
            Unrounded minutes total (0.0 when there are no rows)
        """
        return await self._sum_minutes({
            "user_id": user_id,
            "date": {
                "$gte": start.isoformat(),
                "$lt": next_month_start(start).isoformat(),
            },
        })

    async def get_daily_minute_total(self, user_id: str, day: date) -> float:
        """Minutes recorded for a user on a single day."""
        data = await self.minutes_usage.find_one({"user_id": user_id, "date": day.isoformat()})
        if data:
            return float(MinutesLedgerEntry.from_dict(data).minutes_used)
        return 0.0

    async def upsert_add_minutes(self, user_id: str, day: date, amount: float) -> None:
        """
        Atomically add `amount` to the (user, day) row, creating it when absent.

        A single update with `$inc` and `upsert=True` is one round-trip, so
        concurrent callers never overwrite each other's increments.

        Args:
            user_id: User identifier
            day: Calendar day the usage belongs to
            amount: Minutes to add
        """
        query = {"user_id": user_id, "date": day.isoformat()}
        now = datetime.now().isoformat()
        increment = {
            "$inc": {"minutes_used": amount},
            "$set": {"updated_at": now},
        }

        try:
            await self.minutes_usage.update_one(
                query,
                {
                    **increment,
                    "$setOnInsert": {
                        "id": str(uuid.uuid4()),
                        "created_at": now,
                    },
                },
                upsert=True,
            )
        except DuplicateKeyError:
            # Lost the first-insert race on the unique (user_id, date) index;
            # the row exists now, so a plain increment lands on it.
            await self.minutes_usage.update_one(query, increment)

    async def get_monthly_totals_by_user(self, start: date) -> Dict[str, float]:
        """Minutes used this month for every user with at least one row."""
        pipeline = [
            {"$match": {"date": {
                "$gte": start.isoformat(),
                "$lt": next_month_start(start).isoformat(),
            }}},
            {"$group": {"_id": "$user_id", "total": {"$sum": "$minutes_used"}}},
        ]
        totals = {}
        async for row in self.minutes_usage.aggregate(pipeline):
            totals[row["_id"]] = float(row.get("total") or 0)
        return totals

    async def reset_monthly_minutes(self, start: date, user_id: Optional[str] = None) -> int:
        """
        Administrative bulk reset: zero every minutes row in the month.

        Args:
            start: First day of the month to reset
            user_id: Restrict the reset to one user

        Returns:
            Number of rows reset
        """
        query = {"date": {
            "$gte": start.isoformat(),
            "$lt": next_month_start(start).isoformat(),
        }}
        if user_id:
            query["user_id"] = user_id

        result = await self.minutes_usage.update_many(
            query,
            {"$set": {"minutes_used": 0, "updated_at": datetime.now().isoformat()}}
        )
        logger.info("[Usage] Reset %s minutes rows for month %s (user=%s)",
                    result.modified_count, start.strftime("%Y-%m"), user_id or "all")
        return result.modified_count

    # ==================== TTS LEDGER ====================

    async def get_daily_tts_count(self, user_id: str, day: date) -> int:
        """Number of successful premium TTS calls for a user on a day."""
        start, end = _day_bounds(day)
        return await self.tts_usage.count_documents({
            "user_id": user_id,
            "created_at": {"$gte": start, "$lt": end},
        })

    async def insert_tts_record(self, user_id: str) -> None:
        """Append one TTS call timestamped now."""
        await self.tts_usage.insert_one(TTSLedgerEntry(user_id=user_id).to_dict())

    # ==================== CONFIGURATION ====================

    async def get_config(self, key: str) -> Optional[str]:
        data = await self.api_configs.find_one({"config_key": key})
        if data:
            return ApiConfig.from_dict(data).config_value
        return None

    async def set_config(self, key: str, value: str, description: Optional[str] = None) -> None:
        update = {"config_value": value, "updated_at": datetime.now().isoformat()}
        if description is not None:
            update["description"] = description
        await self.api_configs.update_one(
            {"config_key": key},
            {"$set": update},
            upsert=True,
        )

    async def get_config_description(self, key: str) -> Optional[str]:
        data = await self.api_configs.find_one({"config_key": key})
        if data:
            return ApiConfig.from_dict(data).description
        return None

    # ==================== ADMIN ====================

    async def delete_user_usage(self, user_id: str) -> int:
        """Remove every ledger row belonging to a user."""
        minutes = await self.minutes_usage.delete_many({"user_id": user_id})
        calls = await self.tts_usage.delete_many({"user_id": user_id})
        return minutes.deleted_count + calls.deleted_count

    async def get_usage_stats(self, day: date, start: date) -> dict:
        """Totals across all users for the admin dashboard."""
        active_today = await self.minutes_usage.distinct("user_id", {"date": day.isoformat()})
        minutes_today = await self._sum_minutes({"date": day.isoformat()})
        minutes_month = await self._sum_minutes({"date": {
            "$gte": start.isoformat(),
            "$lt": next_month_start(start).isoformat(),
        }})
        return {
            "active_today": len(active_today),
            "minutes_today": minutes_today,
            "minutes_month": minutes_month,
        }
