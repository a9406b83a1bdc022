from __future__ import annotations
import logging
from enum import Enum
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from lib_usage.errors import ProviderError
from app.config import OPENAI_MODEL, LLM_MAX_TOKENS, PROVIDER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class ConversationClient:
    """
    Single-shot chat completion against OpenAI.

    Any non-2xx response or transport failure is raised as ProviderError.
    No retries are made here.
    """

    class Role(Enum):
        USER = "user"
        SYSTEM = "system"
        ASSISTANT = "assistant"

    def __init__(self, api_key: Optional[str], model: str = OPENAI_MODEL,
                 max_tokens: int = LLM_MAX_TOKENS, client: Optional[AsyncOpenAI] = None):
        self.model = model
        self.max_tokens = max_tokens
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=PROVIDER_TIMEOUT_SECONDS,
            max_retries=0,
        )
        logger.info("[LLM] GPT_Model :> %s", self.model)

    def build_messages(self, system_prompt: str, history: List[dict], message: str) -> List[dict]:
        messages = [{"role": ConversationClient.Role.SYSTEM.value, "content": system_prompt}]
        for item in history or []:
            role = item.get("role")
            content = item.get("content")
            # Only plain user/assistant turns are forwarded from client history.
            if role in (ConversationClient.Role.USER.value, ConversationClient.Role.ASSISTANT.value) and content:
                messages.append({"role": role, "content": content})
        messages.append({"role": ConversationClient.Role.USER.value, "content": message})
        return messages

    async def complete(self, system_prompt: str, history: List[dict], message: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(system_prompt, history, message),
                max_tokens=self.max_tokens,
            )
        except openai.APIStatusError as e:
            raise ProviderError("Conversation provider error", status_code=e.status_code, details=str(e)) from e
        except openai.APIError as e:
            raise ProviderError("Conversation provider unreachable", status_code=502, details=str(e)) from e

        try:
            return response.choices[0].message.content or ""
        except (IndexError, AttributeError, TypeError) as e:
            raise ProviderError("Conversation provider returned no choices", status_code=502, details=str(e)) from e
