"""Adapters for external providers and storage."""

from vomage.providers.base import (
    Failure,
    ImageGenerationProvider,
    PollStatus,
    ProviderResult,
    SentimentProvider,
    Success,
    TranscriptionProvider,
)
from vomage.providers.image import HttpImageProvider
from vomage.providers.sentiment import AgentSentimentProvider
from vomage.providers.storage import InMemoryObjectStore, ObjectStore, SupabaseObjectStore
from vomage.providers.transcription import HttpTranscriptionProvider

__all__ = [
    "Success",
    "Failure",
    "ProviderResult",
    "PollStatus",
    "TranscriptionProvider",
    "SentimentProvider",
    "ImageGenerationProvider",
    "HttpTranscriptionProvider",
    "AgentSentimentProvider",
    "HttpImageProvider",
    "ObjectStore",
    "InMemoryObjectStore",
    "SupabaseObjectStore",
]
