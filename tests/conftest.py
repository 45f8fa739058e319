"""Pytest fixtures and provider fakes for Vomage tests."""

import asyncio
import io
import wave
from typing import Optional

import pytest

from vomage.models.image import ImageDimensions
from vomage.models.sentiment import MoodDistribution, SentimentResult
from vomage.models.transcript import Transcript
from vomage.providers.base import (
    Failure,
    ImageGenerationProvider,
    PollStatus,
    ProviderResult,
    SentimentProvider,
    Success,
    TranscriptionProvider,
)
from vomage.providers.storage import InMemoryObjectStore
from vomage.services.image_generation import ImageGenerationStage
from vomage.services.ingest import IngestGate
from vomage.services.job_store import JobStore
from vomage.services.orchestrator import PipelineOrchestrator
from vomage.services.prompt_synthesizer import PromptSynthesizer
from vomage.services.sentiment import SentimentStage
from vomage.services.transcription import TranscriptionStage
from vomage.utils.errors import ProviderTimeoutError, ProviderUnavailableError
from vomage.utils.retry import OnExhaustion, RetryPolicy

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def make_wav(seconds: float = 2.0, rate: int = 8000) -> bytes:
    """Silent mono 16-bit WAV of the given length."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as clip:
        clip.setnchannels(1)
        clip.setsampwidth(2)
        clip.setframerate(rate)
        clip.writeframes(b"\x00\x00" * int(seconds * rate))
    return buffer.getvalue()


class FakeTranscriptionProvider(TranscriptionProvider):
    """Completes after `polls_until_done` polls with a fixed transcript."""

    name = "fake-transcribe"

    def __init__(
        self,
        text: str = "我看到了一座小木屋",
        polls_until_done: int = 1,
        fail_with: Optional[Exception] = None,
        poll_state: str = "completed",
    ) -> None:
        self.text = text
        self.polls_until_done = polls_until_done
        self.fail_with = fail_with
        self.poll_state = poll_state
        self.submissions = 0
        self.polls = 0

    async def submit(self, audio: bytes, mime_type: str, language: str) -> ProviderResult[str]:
        self.submissions += 1
        if self.fail_with is not None:
            return Failure(self.fail_with)
        return Success(f"job-{self.submissions}")

    async def poll(self, handle: str) -> ProviderResult[PollStatus]:
        self.polls += 1
        if self.poll_state != "completed":
            return Success(PollStatus(state=self.poll_state, failure_reason="provider said no"))
        if self.polls < self.polls_until_done:
            return Success(PollStatus(state="in_progress"))
        return Success(PollStatus(state="completed"))

    async def fetch(self, handle: str) -> ProviderResult[Transcript]:
        return Success(Transcript(text=self.text, confidence=0.92, language="zh-CN"))


class FakeSentimentProvider(SentimentProvider):
    name = "fake-sentiment"

    def __init__(self, mood: str = "calm", fail: bool = False) -> None:
        self.mood = mood
        self.fail = fail
        self.calls = 0

    async def classify(self, text: str) -> ProviderResult[SentimentResult]:
        self.calls += 1
        if self.fail:
            return Failure(ProviderUnavailableError(self.name, "model overloaded", status_code=529))
        return Success(
            SentimentResult(
                mood=self.mood,  # type: ignore[arg-type]
                confidence=0.8,
                distribution=MoodDistribution(positive=0.6, negative=0.1, neutral=0.3),
                keywords=["cabin"],
            )
        )


class FakeImageProvider(ImageGenerationProvider):
    name = "fake-image"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.prompts: list[str] = []

    async def render(self, prompt: str, dimensions: ImageDimensions) -> ProviderResult[bytes]:
        self.prompts.append(prompt)
        if self.fail:
            return Failure(ProviderTimeoutError(self.name, "render timed out"))
        return Success(PNG_BYTES)


def fast_policies(
    transcription_attempts: int = 3,
    sentiment_attempts: int = 2,
    image_attempts: int = 1,
) -> dict[str, RetryPolicy]:
    """Policy table with a non-zero schedule, for use with patched sleep."""
    return {
        "transcription": RetryPolicy(
            max_attempts=transcription_attempts,
            backoff_schedule=[1.0, 2.0, 4.0],
            on_exhaustion=OnExhaustion.FAIL,
            timeout_seconds=5.0,
        ),
        "sentiment": RetryPolicy(
            max_attempts=sentiment_attempts,
            backoff_schedule=[1.0],
            on_exhaustion=OnExhaustion.DEGRADE,
            timeout_seconds=5.0,
        ),
        "prompt_synthesis": RetryPolicy(max_attempts=1, timeout_seconds=5.0),
        "image_generation": RetryPolicy(
            max_attempts=image_attempts,
            on_exhaustion=OnExhaustion.DEGRADE,
            timeout_seconds=5.0,
        ),
    }


def build_pipeline(
    transcription: Optional[TranscriptionProvider] = None,
    sentiment: Optional[SentimentProvider] = None,
    image: Optional[ImageGenerationProvider] = None,
    policies: Optional[dict[str, RetryPolicy]] = None,
    transcription_limit: int = 4,
    image_limit: int = 2,
    image_timeout: float = 5.0,
) -> tuple[PipelineOrchestrator, JobStore, InMemoryObjectStore, IngestGate]:
    """Wire a full pipeline around fakes and in-memory storage."""
    objects = InMemoryObjectStore()
    store = JobStore()
    orchestrator = PipelineOrchestrator(
        store,
        TranscriptionStage(
            transcription or FakeTranscriptionProvider(),
            objects,
            asyncio.Semaphore(transcription_limit),
            poll_interval=1.0,
            poll_ceiling=4.0,
            poll_budget=20.0,
        ),
        SentimentStage(sentiment or FakeSentimentProvider(), asyncio.Semaphore(4)),
        PromptSynthesizer(),
        ImageGenerationStage(
            image or FakeImageProvider(), objects, asyncio.Semaphore(image_limit), timeout=image_timeout
        ),
        policies or fast_policies(),
    )
    gate = IngestGate(
        objects,
        max_bytes=25 * 1024 * 1024,
        allowed_types=["audio/webm", "audio/mp4", "audio/mpeg", "audio/wav", "audio/x-wav", "audio/ogg"],
    )
    return orchestrator, store, objects, gate


@pytest.fixture
def wav_bytes() -> bytes:
    """Two seconds of silent WAV audio."""
    return make_wav(2.0)


@pytest.fixture
def sample_transcript() -> Transcript:
    return Transcript(text="我看到了一座小木屋", confidence=0.9, language="zh-CN")


@pytest.fixture
def sample_sentiment() -> SentimentResult:
    return SentimentResult(
        mood="happy",
        confidence=0.85,
        distribution=MoodDistribution(positive=0.7, negative=0.1, neutral=0.2),
    )
