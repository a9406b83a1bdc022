"""
Usage Metering Module

Quota policy, admission checks and usage recording for conversation minutes
and premium TTS calls. The metered wrappers that tie these to the provider
clients live in lib_usage.metered_operation.
"""

from lib_usage.errors import QuotaExceeded, ProviderError
from lib_usage.quota_policy import QuotaDecision, evaluate
from lib_usage.admission_controller import AdmissionController
from lib_usage.usage_recorder import UsageRecorder

__all__ = [
    'QuotaExceeded',
    'ProviderError',
    'QuotaDecision',
    'evaluate',
    'AdmissionController',
    'UsageRecorder',
]
