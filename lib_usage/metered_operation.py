"""
Metered Operation Wrapper

Runs one costed downstream call as a single unit:

    admission -> downstream call -> cost -> ledger write -> result

A denied admission raises QuotaExceeded before anything is spent. A failed
downstream call raises ProviderError and records nothing. Once admitted, the
call and its ledger write run in a task that the caller awaits through
asyncio.shield, so a disconnecting client does not cancel either one.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, List, Optional, Set

from lib_database.models import User
from lib_database.usage_repository import today
from lib_llm.conversation_client import ConversationClient
from lib_tts.text_to_speech_google import TextToSpeechGoogle, VoiceParams
from lib_usage.admission_controller import AdmissionController
from lib_usage.errors import QuotaExceeded, ProviderError
from lib_usage.usage_recorder import UsageRecorder
from app.config import WORDS_PER_MINUTE, TTS_MAX_CHARS

logger = logging.getLogger(__name__)


@dataclass
class MeteredResult:
    result: Any
    cost_applied: float
    used: float  # consumption observed at admission, before this call
    limit: float
    recorded: bool = True


def word_count(text: str) -> int:
    return len(text.split())


def estimate_minutes(text: str, words_per_minute: int = WORDS_PER_MINUTE) -> float:
    """Spoken-length estimate of a response, rounded to two decimals."""
    return round(word_count(text) / words_per_minute, 2)


class MeteredOperation:
    """
    Base class for a metered resource. Subclasses provide admission, the
    downstream call, the cost function and the ledger write.
    """
    resource = "resource"
    fallback_to_local = False

    def __init__(
        self,
        admission: AdmissionController,
        recorder: UsageRecorder,
        clock: Callable[[], date] = today
    ):
        self.admission = admission
        self.recorder = recorder
        self.clock = clock
        self._inflight: Set[asyncio.Task] = set()

    async def admit(self, user: User):
        """Return (admitted, used, limit)."""
        raise NotImplementedError

    async def call(self, *args, **kwargs):
        raise NotImplementedError

    def cost(self, result) -> float:
        raise NotImplementedError

    async def record(self, user: User, day: date, cost: float) -> bool:
        raise NotImplementedError

    async def run(self, user: User, *args, **kwargs) -> MeteredResult:
        """
        Execute the operation for `user`.

        Raises:
            QuotaExceeded: admission denied, nothing was called or recorded
            ProviderError: downstream call failed, nothing was recorded
        """
        admitted, used, limit = await self.admit(user)
        if not admitted:
            raise QuotaExceeded(self.resource, used, limit, fallback_to_local=self.fallback_to_local)

        day = self.clock()
        task = asyncio.create_task(self._execute(user, day, used, limit, *args, **kwargs))
        self._inflight.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    async def _execute(self, user: User, day: date, used, limit, *args, **kwargs) -> MeteredResult:
        try:
            result = await self.call(*args, **kwargs)
        except ProviderError as e:
            logger.error("[Metered] %s provider failure for %s (status %s): %s",
                         self.resource, user.id, e.status_code, e)
            e.fallback_to_local = self.fallback_to_local
            raise

        cost = self.cost(result)
        recorded = await self.record(user, day, cost)
        return MeteredResult(result=result, cost_applied=cost, used=used, limit=limit, recorded=recorded)

    def _forget(self, task: asyncio.Task):
        self._inflight.discard(task)
        # Retrieve the exception so abandoned tasks don't warn at GC time.
        if not task.cancelled():
            task.exception()

    async def drain(self):
        """Wait for in-flight operations, used at shutdown."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)


class MeteredConversation(MeteredOperation):
    """Conversation turns charged in estimated spoken minutes."""
    resource = "conversation_minutes"

    def __init__(self, admission: AdmissionController, recorder: UsageRecorder,
                 client: ConversationClient, clock: Callable[[], date] = today):
        super().__init__(admission, recorder, clock)
        self.client = client

    async def admit(self, user: User):
        decision = await self.admission.admit_conversation(user)
        return decision.admitted, decision.monthly_used, decision.monthly_limit

    async def call(self, system_prompt: str, history: List[dict], message: str) -> str:
        return await self.client.complete(system_prompt, history, message)

    def cost(self, result: str) -> float:
        return estimate_minutes(result)

    async def record(self, user: User, day: date, cost: float) -> bool:
        return await self.recorder.record_minutes(user.id, day, cost)


class MeteredTTS(MeteredOperation):
    """Premium synthesis charged one call per success, whatever the text length."""
    resource = "tts_calls"
    fallback_to_local = True

    def __init__(self, admission: AdmissionController, recorder: UsageRecorder,
                 client: TextToSpeechGoogle, clock: Callable[[], date] = today,
                 max_chars: int = TTS_MAX_CHARS):
        super().__init__(admission, recorder, clock)
        self.client = client
        self.max_chars = max_chars

    async def admit(self, user: User):
        decision = await self.admission.admit_tts(user)
        return decision.admitted, decision.used_today, decision.daily_limit

    async def call(self, text: str, voice: Optional[VoiceParams] = None) -> bytes:
        return await self.client.synthesize(text[:self.max_chars], voice or VoiceParams())

    def cost(self, result: bytes) -> float:
        return 1

    async def record(self, user: User, day: date, cost: float) -> bool:
        return await self.recorder.record_tts_call(user.id)
