"""FastAPI dependencies and the pipeline dependency container."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

import httpx
from fastapi import Request

from vomage.agents.mood import create_mood_agent
from vomage.config import Settings, get_settings
from vomage.models.image import ImageDimensions
from vomage.providers.image import HttpImageProvider
from vomage.providers.sentiment import AgentSentimentProvider
from vomage.providers.storage import InMemoryObjectStore, ObjectStore, SupabaseObjectStore
from vomage.providers.transcription import HttpTranscriptionProvider
from vomage.services.image_generation import ImageGenerationStage
from vomage.services.ingest import IngestGate
from vomage.services.job_store import JobStore
from vomage.services.orchestrator import PipelineOrchestrator, build_policy_table
from vomage.services.prompt_synthesizer import PromptSynthesizer
from vomage.services.sentiment import SentimentStage
from vomage.services.transcription import TranscriptionStage

logger = logging.getLogger(__name__)


@dataclass
class PipelineContainer:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    ingest: IngestGate
    store: JobStore
    orchestrator: PipelineOrchestrator
    http_client: Optional[httpx.AsyncClient] = None

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def create_supabase_client(settings: Settings) -> Optional[Any]:
    """Supabase client when credentials are configured, otherwise None."""
    if not settings.supabase_url or not settings.supabase_key:
        return None
    from supabase import create_client

    return create_client(settings.supabase_url, settings.supabase_key)


def build_container(settings: Optional[Settings] = None) -> PipelineContainer:
    """
    Wire providers, stages, store and orchestrator from settings.

    Args:
        settings: Application settings; defaults to the cached environment settings

    Returns:
        Ready-to-use PipelineContainer
    """
    settings = settings or get_settings()
    client = httpx.AsyncClient()
    supabase = create_supabase_client(settings)

    audio_store: ObjectStore
    image_store: ObjectStore
    if supabase is not None:
        audio_store = SupabaseObjectStore(supabase, settings.audio_bucket)
        image_store = SupabaseObjectStore(supabase, settings.image_bucket)
    else:
        logger.warning("Supabase not configured, using in-memory storage")
        audio_store = image_store = InMemoryObjectStore()

    store = JobStore(
        retention=timedelta(hours=settings.job_retention_hours),
        supabase_client=supabase,
        table=settings.jobs_table,
    )

    transcription = TranscriptionStage(
        HttpTranscriptionProvider(
            client, settings.transcription_api_url, settings.transcription_api_key
        ),
        audio_store,
        asyncio.Semaphore(settings.transcription_concurrency),
        poll_interval=settings.transcription_poll_interval,
        poll_ceiling=settings.transcription_poll_ceiling,
        poll_budget=settings.transcription_poll_budget,
        language=settings.transcription_language,
    )
    sentiment = SentimentStage(
        AgentSentimentProvider(create_mood_agent, api_key=settings.anthropic_api_key),
        asyncio.Semaphore(settings.sentiment_concurrency),
    )
    image = ImageGenerationStage(
        HttpImageProvider(
            client,
            settings.image_api_url,
            settings.image_api_key,
            model_id=settings.image_model,
            request_timeout=settings.image_timeout,
        ),
        image_store,
        asyncio.Semaphore(settings.image_concurrency),
        timeout=settings.image_timeout,
    )

    orchestrator = PipelineOrchestrator(
        store,
        transcription,
        sentiment,
        PromptSynthesizer(default_style=settings.default_image_style),
        image,
        build_policy_table(settings),
        ImageDimensions(width=settings.image_width, height=settings.image_height),
    )
    ingest = IngestGate(
        audio_store,
        settings.max_audio_bytes,
        settings.allowed_audio_types,
        min_seconds=settings.min_audio_seconds,
        max_seconds=settings.max_audio_seconds,
    )
    return PipelineContainer(
        settings=settings,
        ingest=ingest,
        store=store,
        orchestrator=orchestrator,
        http_client=client,
    )


def get_container(request: Request) -> PipelineContainer:
    """Dependency for the process-wide pipeline container."""
    return request.app.state.container
