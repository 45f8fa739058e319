"""Provider adapter contracts and the normalized result variant.

Every external service sits behind an adapter that returns either
``Success(value)`` or ``Failure(error)``. Provider-specific payload shapes
never travel past the adapter.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Generic, Literal, NoReturn, Optional, TypeVar, Union

import httpx

from vomage.models.image import ImageDimensions
from vomage.models.sentiment import SentimentResult
from vomage.models.transcript import Transcript
from vomage.utils.errors import (
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)

logger = logging.getLogger(__name__)
T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Provider call produced a normalized value."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    """Provider call failed; carries the classified error."""

    error: ProviderError

    @property
    def ok(self) -> bool:
        return False

    @property
    def reason(self) -> str:
        return self.error.message

    def unwrap(self) -> NoReturn:
        raise self.error


ProviderResult = Union[Success[T], Failure]


async def capture(call: Awaitable[T]) -> "ProviderResult[T]":
    """Await an adapter call, folding ProviderError into a Failure."""
    try:
        return Success(await call)
    except ProviderError as e:
        logger.warning(f"Provider call failed: {e}")
        return Failure(e)


def check_response(provider: str, response: httpx.Response) -> None:
    """
    Classify a non-success HTTP response.

    Args:
        provider: Provider identifier for error messages
        response: HTTP response to inspect

    Raises:
        ProviderUnavailableError: On 429 and 5xx responses
        ProviderResponseError: On any other non-2xx response
    """
    if response.is_success:
        return
    if response.status_code == 429 or response.status_code >= 500:
        raise ProviderUnavailableError(provider, response.text[:200], status_code=response.status_code)
    raise ProviderResponseError(provider, f"HTTP {response.status_code}: {response.text[:200]}")


def classify_http_error(provider: str, exc: httpx.HTTPError) -> ProviderError:
    """Map an httpx transport error onto the provider error taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return ProviderTimeoutError(provider, f"request timed out: {exc}")
    return ProviderUnavailableError(provider, f"transport error: {exc}")


@dataclass(frozen=True)
class PollStatus:
    """Status of a submitted transcription job."""

    state: Literal["submitted", "in_progress", "completed", "failed"]
    failure_reason: Optional[str] = None


class TranscriptionProvider(ABC):
    """Asynchronous speech-to-text service with a submit/poll/fetch contract."""

    name: str = "transcription"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def submit(self, audio: bytes, mime_type: str, language: str) -> ProviderResult[str]:
        """Start a transcription job and return its handle."""

    @abstractmethod
    async def poll(self, handle: str) -> ProviderResult[PollStatus]:
        """Report the status of a submitted job."""

    @abstractmethod
    async def fetch(self, handle: str) -> ProviderResult[Transcript]:
        """Download the finished transcript."""


class SentimentProvider(ABC):
    """Mood classifier for transcript text."""

    name: str = "sentiment"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def classify(self, text: str) -> ProviderResult[SentimentResult]:
        """Classify text into a mood with a distribution."""


class ImageGenerationProvider(ABC):
    """Primary generative image service."""

    name: str = "image"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def render(self, prompt: str, dimensions: ImageDimensions) -> ProviderResult[bytes]:
        """Render a prompt into encoded image bytes."""
