"""
Usage Recorder

Post-flight accumulation of actual cost into the ledgers. A failed write is
logged and reported as False; it never reaches the caller, whose response
has already been produced.
"""
import logging
from datetime import date

from lib_database.usage_repository import UsageRepository

logger = logging.getLogger(__name__)


class UsageRecorder:

    def __init__(self, repository: UsageRepository):
        self.repository = repository

    async def record_minutes(self, user_id: str, day: date, amount: float) -> bool:
        """
        Add conversation minutes to the (user, day) ledger row.

        Args:
            user_id: User identifier
            day: Calendar day to charge
            amount: Minutes to add; zero or negative amounts are ignored

        Returns:
            True if the ledger now reflects the amount
        """
        if amount <= 0:
            return True

        try:
            await self.repository.upsert_add_minutes(user_id, day, amount)
            logger.debug("[Usage] +%.2f min for %s on %s", amount, user_id, day)
            return True
        except Exception:
            logger.exception("[Usage] Failed to record %.2f minutes for %s on %s",
                             amount, user_id, day)
            return False

    async def record_tts_call(self, user_id: str) -> bool:
        """Append one TTS call to the ledger."""
        try:
            await self.repository.insert_tts_record(user_id)
            return True
        except Exception:
            logger.exception("[Usage] Failed to record TTS call for %s", user_id)
            return False
