"""Service layer for Vomage."""

from vomage.services.image_generation import ImageGenerationStage
from vomage.services.ingest import IngestGate
from vomage.services.job_store import JobStore
from vomage.services.orchestrator import PipelineOrchestrator, build_policy_table
from vomage.services.procedural import render_procedural
from vomage.services.prompt_synthesizer import PromptSynthesizer, ensure_faithful
from vomage.services.sentiment import SentimentStage
from vomage.services.transcription import TranscriptionStage

__all__ = [
    "ImageGenerationStage",
    "IngestGate",
    "JobStore",
    "PipelineOrchestrator",
    "build_policy_table",
    "render_procedural",
    "PromptSynthesizer",
    "ensure_faithful",
    "SentimentStage",
    "TranscriptionStage",
]
