"""Job and stage result models."""

from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from vomage.models.audio import AudioRef
from vomage.models.prompt import ImageStyle, SituationalContext

JobState = Literal["created", "running", "succeeded", "failed"]

JobPhase = Literal[
    "created",
    "transcription_running",
    "sentiment_running",
    "prompt_synthesis",
    "image_running",
    "succeeded",
    "failed",
]

StageName = Literal["transcription", "sentiment", "prompt_synthesis", "image_generation"]

# Execution order of the pipeline stages.
STAGE_ORDER: tuple[str, ...] = ("transcription", "sentiment", "prompt_synthesis", "image_generation")

StageStatus = Literal[
    "pending",
    "running",
    "succeeded",
    "failed_retryable",
    "failed_fallback",
    "failed_fatal",
]

TERMINAL_STATES: frozenset[str] = frozenset({"succeeded", "failed"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StageResult(BaseModel):
    """Outcome of one attempt at one pipeline stage."""

    stage: StageName
    status: StageStatus
    provider: str
    attempt: int = Field(default=1, ge=1)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    output: Optional[dict[str, Any]] = None
    confidence: Optional[float] = None
    error: Optional[str] = None

    @property
    def settled(self) -> bool:
        """True when this result resolved its stage (success or fallback)."""
        return self.status in ("succeeded", "failed_fallback")


class JobProgress(BaseModel):
    """Read-only progress projection exposed to pollers."""

    stage: JobPhase = "created"
    percent: int = Field(default=0, ge=0, le=100)
    message: str = "Job accepted"


class Job(BaseModel):
    """End-to-end voice-to-image request and its accumulated state."""

    job_id: str = Field(min_length=1)
    state: JobState = "created"
    phase: JobPhase = "created"
    input_audio: AudioRef
    context: Optional[SituationalContext] = None
    style: ImageStyle = "abstract"
    stage_results: list[StageResult] = Field(default_factory=list)
    progress: JobProgress = Field(default_factory=JobProgress)
    reason: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def authoritative(self, stage: str) -> Optional[StageResult]:
        """Last recorded result for a stage, if any."""
        for result in reversed(self.stage_results):
            if result.stage == stage:
                return result
        return None

    def results_for(self, stage: str) -> list[StageResult]:
        return [result for result in self.stage_results if result.stage == stage]
