"""
Admission Controller

Pre-flight quota checks, evaluated before any costed downstream call starts.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Callable

from lib_database.models import User
from lib_database.usage_repository import UsageRepository, today, month_start
from lib_usage.quota_policy import evaluate, QuotaDecision, Number
from app.config import TTS_DAILY_LIMIT_DEFAULT, TTS_DAILY_LIMIT_KEY

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationAdmission:
    admitted: bool
    monthly_used: float
    monthly_limit: float


@dataclass(frozen=True)
class TTSAdmission:
    admitted: bool
    used_today: int
    daily_limit: Number  # inf for quota-exempt users


class AdmissionController:
    """
    Read-only quota checks for the two billable resources.

    Quota-exempt users are admitted without touching the store.
    """

    def __init__(
        self,
        repository: UsageRepository,
        default_tts_limit: int = TTS_DAILY_LIMIT_DEFAULT,
        clock: Callable[[], date] = today
    ):
        """
        Args:
            repository: Ledger store
            default_tts_limit: Daily TTS limit used when none is configured
            clock: Returns the current server-local day
        """
        self.repository = repository
        self.default_tts_limit = default_tts_limit
        self.clock = clock

    async def admit_conversation(self, user: User) -> ConversationAdmission:
        if user.quota_exempt:
            decision = QuotaDecision.unlimited()
        else:
            used = await self.repository.get_monthly_minute_total(user.id, month_start(self.clock()))
            decision = evaluate(used, user.minutes_limit)

        if not decision.admitted:
            logger.info("[Admission] Conversation denied for %s: %.2f/%s minutes",
                        user.id, decision.consumption, decision.limit)

        return ConversationAdmission(
            admitted=decision.admitted,
            monthly_used=decision.consumption,
            monthly_limit=decision.limit,
        )

    async def admit_tts(self, user: User) -> TTSAdmission:
        if user.quota_exempt:
            decision = QuotaDecision.unlimited()
        else:
            daily_limit = await self.get_tts_daily_limit()
            used = await self.repository.get_daily_tts_count(user.id, self.clock())
            decision = evaluate(used, daily_limit)

        if not decision.admitted:
            logger.info("[Admission] TTS denied for %s: %s/%s calls today",
                        user.id, decision.consumption, decision.limit)

        return TTSAdmission(
            admitted=decision.admitted,
            used_today=decision.consumption,
            daily_limit=decision.limit,
        )

    async def get_tts_daily_limit(self) -> int:
        """
        Configured daily TTS limit, falling back to the default when the
        setting is absent or not an integer.
        """
        raw: Optional[str] = await self.repository.get_config(TTS_DAILY_LIMIT_KEY)
        if raw is None:
            logger.debug("[Admission] %s not configured, using default %s",
                         TTS_DAILY_LIMIT_KEY, self.default_tts_limit)
            return self.default_tts_limit
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.debug("[Admission] %s=%r is not an integer, using default %s",
                         TTS_DAILY_LIMIT_KEY, raw, self.default_tts_limit)
            return self.default_tts_limit
