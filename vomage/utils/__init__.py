"""Utility modules for Vomage."""

from vomage.utils.errors import (
    ContentIntegrityError,
    IngestValidationError,
    JobNotFoundError,
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    StorageError,
    VomageError,
)
from vomage.utils.retry import OnExhaustion, RetryPolicy, exponential_schedule, with_retry

__all__ = [
    "VomageError",
    "IngestValidationError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderResponseError",
    "ContentIntegrityError",
    "JobNotFoundError",
    "StorageError",
    "OnExhaustion",
    "RetryPolicy",
    "exponential_schedule",
    "with_retry",
]
