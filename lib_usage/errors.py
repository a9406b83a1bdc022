"""
Error types raised by the metering core.
"""
from typing import Optional


class QuotaExceeded(Exception):
    """
    Admission denied because the user's allowance for a resource is used up.

    Expected and user-facing: callers render `used` and `limit`, it is not
    logged as an error.
    """

    def __init__(self, resource: str, used: float, limit: float, fallback_to_local: bool = False):
        self.resource = resource
        self.used = used
        self.limit = limit
        self.fallback_to_local = fallback_to_local
        super().__init__(f"{resource} quota exceeded: {used}/{limit}")


class ProviderError(Exception):
    """A downstream AI or TTS provider call failed."""

    def __init__(self, message: str, status_code: int = 502, details: Optional[str] = None):
        self.status_code = status_code
        self.details = details
        # Set by the TTS wrapper so callers switch to on-device speech.
        self.fallback_to_local = False
        super().__init__(message)
