"""Custom exception classes for the Vomage pipeline."""

from typing import Optional


class VomageError(Exception):
    """Base exception for all application errors."""

    pass


class IngestValidationError(VomageError):
    """Uploaded audio was rejected before any provider call."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class ProviderError(VomageError):
    """Errors raised by an external provider adapter."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within its time budget."""

    pass


class ProviderUnavailableError(ProviderError):
    """Provider refused the request or reported a failed job."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"error {status_code}: {message}"
        super().__init__(provider, message)


class ProviderResponseError(ProviderError):
    """Provider answered with a payload we could not normalize."""

    pass


class ContentIntegrityError(VomageError):
    """Synthesized prompt does not contain the transcript text."""

    def __init__(self, transcript: str, prompt: str) -> None:
        self.transcript = transcript
        self.prompt = prompt
        super().__init__(f"Prompt does not contain transcript {transcript!r}")


class JobNotFoundError(VomageError):
    """Requested job is unknown or has been purged."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class StorageError(VomageError):
    """Object storage read or write failed."""

    pass
