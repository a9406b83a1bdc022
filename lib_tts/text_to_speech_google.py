import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from lib_usage.errors import ProviderError
from app.config import PROVIDER_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

GOOGLE_TTS_URL = "https://texttospeech.googleapis.com/v1/text:synthesize"

# languageCode -> ssmlGender -> Neural2 voice name
VOICE_MAP = {
    "en-US": {"MALE": "en-US-Neural2-J", "FEMALE": "en-US-Neural2-F", "NEUTRAL": "en-US-Neural2-A"},
    "en-GB": {"MALE": "en-GB-Neural2-D", "FEMALE": "en-GB-Neural2-F", "NEUTRAL": "en-GB-Neural2-A"},
    "en-AU": {"MALE": "en-AU-Neural2-D", "FEMALE": "en-AU-Neural2-A", "NEUTRAL": "en-AU-Neural2-B"},
    "en-IN": {"MALE": "en-IN-Neural2-D", "FEMALE": "en-IN-Neural2-A", "NEUTRAL": "en-IN-Neural2-B"},
    "en-CA": {"MALE": "en-US-Neural2-J", "FEMALE": "en-US-Neural2-F", "NEUTRAL": "en-US-Neural2-A"},
}


@dataclass(frozen=True)
class VoiceParams:
    language: str = "en-US"
    gender: str = "MALE"

    @property
    def voice_name(self) -> str:
        choice = VOICE_MAP.get(self.language, VOICE_MAP["en-US"])
        return choice.get(self.gender, choice["MALE"])


class TextToSpeechGoogle:
    """
    Google Cloud Text-to-Speech over REST. Returns MP3 bytes.
    """

    def __init__(self, api_key: Optional[str], http_client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.http_client = http_client or httpx.AsyncClient(timeout=PROVIDER_TIMEOUT_SECONDS)

        self.audio_config = {
            "audioEncoding": "MP3",
            "speakingRate": 0.95,
            "pitch": 0.0,
            "volumeGainDb": 0.0,
            "effectsProfileId": ["headphone-class-device"],
        }

    def build_payload(self, text: str, voice: VoiceParams) -> dict:
        return {
            "input": {"text": text},
            "voice": {
                "languageCode": voice.language,
                "name": voice.voice_name,
                "ssmlGender": voice.gender,
            },
            "audioConfig": self.audio_config,
        }

    async def synthesize(self, text: str, voice: VoiceParams) -> bytes:
        if not self.api_key:
            raise ProviderError("Google API Key not configured", status_code=500)

        try:
            response = await self.http_client.post(
                GOOGLE_TTS_URL,
                params={"key": self.api_key},
                json=self.build_payload(text, voice),
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"TTS request failed: {e}", status_code=502) from e

        if response.is_error:
            logger.error("[TTS] Google TTS error %s: %s", response.status_code, response.text[:300])
            raise ProviderError(
                f"TTS API error: {response.reason_phrase}",
                status_code=response.status_code,
                details=response.text,
            )

        try:
            return base64.b64decode(response.json()["audioContent"], validate=True)
        except (ValueError, KeyError, TypeError, binascii.Error) as e:
            logger.error("[TTS] Unreadable Google TTS response: %s", response.text[:300])
            raise ProviderError("TTS API returned no audio", status_code=502, details=str(e)) from e

    async def close(self):
        await self.http_client.aclose()
