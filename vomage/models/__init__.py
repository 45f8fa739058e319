"""Pydantic data models for Vomage."""

from vomage.models.audio import AudioRef
from vomage.models.image import ImageArtifact, ImageDimensions
from vomage.models.job import Job, JobProgress, StageResult
from vomage.models.prompt import Prompt, SituationalContext
from vomage.models.sentiment import MoodDistribution, SentimentResult
from vomage.models.transcript import Transcript, TranscriptSegment

__all__ = [
    "AudioRef",
    "ImageArtifact",
    "ImageDimensions",
    "Job",
    "JobProgress",
    "StageResult",
    "Prompt",
    "SituationalContext",
    "MoodDistribution",
    "SentimentResult",
    "Transcript",
    "TranscriptSegment",
]
