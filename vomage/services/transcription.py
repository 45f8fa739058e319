"""Transcription stage: submit/poll/fetch against the speech-to-text provider."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from vomage.models.audio import AudioRef
from vomage.models.transcript import Transcript
from vomage.providers.base import ProviderResult, TranscriptionProvider
from vomage.providers.storage import ObjectStore
from vomage.utils.errors import ProviderTimeoutError, ProviderUnavailableError

logger = logging.getLogger(__name__)
T = TypeVar("T")

ProgressCallback = Callable[[float], Awaitable[None]]


class TranscriptionStage:
    """Runs one transcription attempt for a stored audio clip."""

    def __init__(
        self,
        provider: TranscriptionProvider,
        store: ObjectStore,
        semaphore: asyncio.Semaphore,
        poll_interval: float = 2.0,
        poll_ceiling: float = 10.0,
        poll_budget: float = 120.0,
        language: str = "zh-CN",
    ) -> None:
        """
        Initialize the TranscriptionStage.

        Args:
            provider: Speech-to-text adapter
            store: Object storage holding the uploaded audio
            semaphore: Limits concurrent calls to the provider
            poll_interval: First delay between status checks
            poll_ceiling: Largest delay between status checks
            poll_budget: Total time spent polling before giving up
            language: Language tag sent with every submission
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.provider = provider
        self.store = store
        self.semaphore = semaphore
        self.poll_interval = poll_interval
        self.poll_ceiling = poll_ceiling
        self.poll_budget = poll_budget
        self.language = language

    async def _call(self, call: Callable[[], Awaitable[ProviderResult[T]]]) -> T:
        async with self.semaphore:
            result = await call()
        return result.unwrap()

    async def transcribe(
        self,
        audio: AudioRef,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Transcript:
        """
        Transcribe a stored clip.

        Args:
            audio: Reference to the validated upload
            on_progress: Receives the fraction of the poll budget used so far

        Returns:
            Normalized transcript

        Raises:
            ProviderUnavailableError: If the provider reports the job failed
            ProviderTimeoutError: If the poll budget is exhausted
            ProviderResponseError: If the provider returns an empty or malformed transcript
        """
        data = await self.store.get(audio.ref)
        handle = await self._call(lambda: self.provider.submit(data, audio.mime_type, self.language))
        logger.info(f"Submitted {audio.ref} for transcription as {handle}")

        elapsed = 0.0
        delay = self.poll_interval
        while True:
            status = await self._call(lambda: self.provider.poll(handle))

            if status.state == "completed":
                break
            if status.state == "failed":
                raise ProviderUnavailableError(
                    self.provider.name,
                    f"Transcription job {handle} failed: {status.failure_reason or 'unknown reason'}",
                )
            if elapsed >= self.poll_budget:
                raise ProviderTimeoutError(
                    self.provider.name,
                    f"Transcription job {handle} still {status.state} after {elapsed:.0f}s",
                )

            wait = min(delay, self.poll_budget - elapsed)
            await asyncio.sleep(wait)
            elapsed += wait
            delay = min(delay * 2, self.poll_ceiling)

            if on_progress is not None and self.poll_budget > 0:
                await on_progress(min(elapsed / self.poll_budget, 1.0))

        transcript = await self._call(lambda: self.provider.fetch(handle))
        logger.info(
            f"Transcription {handle} completed: {len(transcript.text)} chars, "
            f"confidence {transcript.confidence:.2f}"
        )
        return transcript
