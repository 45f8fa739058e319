"""Sentiment stage: mood classification of the transcript."""

import asyncio
import logging

from vomage.models.sentiment import SentimentResult
from vomage.models.transcript import Transcript
from vomage.providers.base import SentimentProvider

logger = logging.getLogger(__name__)


class SentimentStage:
    """Classifies a transcript through the configured sentiment provider."""

    def __init__(self, provider: SentimentProvider, semaphore: asyncio.Semaphore) -> None:
        self.provider = provider
        self.semaphore = semaphore

    async def classify(self, transcript: Transcript) -> SentimentResult:
        """
        Classify the transcript's mood.

        Raises:
            ProviderError: If the provider fails; the orchestrator degrades to neutral
        """
        async with self.semaphore:
            result = await self.provider.classify(transcript.text)
        sentiment = result.unwrap()
        logger.debug(f"Sentiment {sentiment.mood} with distribution {sentiment.distribution}")
        return sentiment
