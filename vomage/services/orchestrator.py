"""Per-job pipeline state machine.

Sequences transcription, sentiment, prompt synthesis and image generation,
interpreting one declarative retry policy per stage and recording one
StageResult per attempt.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel

from vomage.config import Settings
from vomage.models.image import ImageDimensions
from vomage.models.job import Job, JobPhase, StageResult, utcnow
from vomage.models.prompt import Prompt
from vomage.models.sentiment import SentimentResult
from vomage.models.transcript import Transcript
from vomage.services.image_generation import FALLBACK_PROVIDER, ImageGenerationStage
from vomage.services.job_store import JobStore
from vomage.services.prompt_synthesizer import PromptSynthesizer, ensure_faithful
from vomage.services.sentiment import SentimentStage
from vomage.services.transcription import TranscriptionStage
from vomage.utils.errors import JobNotFoundError, ProviderError, StorageError
from vomage.utils.retry import OnExhaustion, RetryPolicy, exponential_schedule

logger = logging.getLogger(__name__)
M = TypeVar("M", bound=BaseModel)

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (ProviderError, StorageError, asyncio.TimeoutError)

NEUTRAL_PROVIDER = "neutral-default"
SYNTHESIZER_PROVIDER = "rule-table"

FAILURE_REASONS: dict[str, str] = {
    "transcription": "TranscriptionUnavailable",
    "sentiment": "SentimentUnavailable",
    "prompt_synthesis": "PromptSynthesisFailed",
    "image_generation": "ImageGenerationUnavailable",
}
INTERNAL_ERROR = "InternalError"

# Progress percent at the start of each phase.
PHASE_PROGRESS: dict[str, int] = {
    "created": 0,
    "transcription_running": 10,
    "sentiment_running": 40,
    "prompt_synthesis": 60,
    "image_running": 70,
    "succeeded": 100,
    "failed": 0,
}
TRANSCRIPTION_PROGRESS_CEILING = 40


class StageFailedError(Exception):
    """A fail-on-exhaustion stage ran out of attempts."""

    def __init__(self, stage: str, reason: str, detail: str) -> None:
        self.stage = stage
        self.reason = reason
        self.detail = detail
        super().__init__(f"{stage} failed: {detail}")


def build_policy_table(settings: Settings) -> dict[str, RetryPolicy]:
    """
    Derive the per-stage policy table from settings.

    Transcription is mandatory and fails the job once exhausted; sentiment and
    image generation degrade to local fallbacks.
    """

    def backoff(attempts: int) -> list[float]:
        return exponential_schedule(settings.base_delay_seconds, attempts - 1, settings.max_delay_seconds)

    return {
        "transcription": RetryPolicy(
            max_attempts=settings.transcription_max_attempts,
            backoff_schedule=backoff(settings.transcription_max_attempts),
            on_exhaustion=OnExhaustion.FAIL,
            timeout_seconds=settings.transcription_poll_budget + 30.0,
        ),
        "sentiment": RetryPolicy(
            max_attempts=settings.sentiment_max_attempts,
            backoff_schedule=backoff(settings.sentiment_max_attempts),
            on_exhaustion=OnExhaustion.DEGRADE,
            timeout_seconds=settings.sentiment_timeout,
        ),
        "prompt_synthesis": RetryPolicy(
            max_attempts=1,
            on_exhaustion=OnExhaustion.FAIL,
            timeout_seconds=5.0,
        ),
        "image_generation": RetryPolicy(
            max_attempts=settings.image_max_attempts,
            backoff_schedule=backoff(settings.image_max_attempts),
            on_exhaustion=OnExhaustion.DEGRADE,
            timeout_seconds=settings.image_timeout + 5.0,
        ),
    }


class PipelineOrchestrator:
    """Drives jobs through the pipeline and records every attempt."""

    def __init__(
        self,
        store: JobStore,
        transcription: TranscriptionStage,
        sentiment: SentimentStage,
        synthesizer: PromptSynthesizer,
        image: ImageGenerationStage,
        policies: dict[str, RetryPolicy],
        dimensions: Optional[ImageDimensions] = None,
    ) -> None:
        """
        Initialize the PipelineOrchestrator.

        Args:
            store: Job store to read and mutate
            transcription: Mandatory transcription stage
            sentiment: Optional sentiment stage
            synthesizer: Deterministic prompt synthesizer
            image: Image stage with procedural fallback
            policies: Retry policy per stage name
            dimensions: Size requested for every image
        """
        self.store = store
        self.transcription = transcription
        self.sentiment = sentiment
        self.synthesizer = synthesizer
        self.image = image
        self.policies = policies
        self.dimensions = dimensions or ImageDimensions()
        self._tasks: set[asyncio.Task] = set()
        self._running: set[str] = set()

    # ==================== SCHEDULING ====================

    def submit(self, job_id: str) -> asyncio.Task:
        """Run a job in its own task."""
        task = asyncio.create_task(self.run(job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def recover(self) -> int:
        """
        Resume every non-terminal job, e.g. after a restart.

        Returns:
            Number of resumed jobs
        """
        job_ids = await self.store.unfinished()
        for job_id in job_ids:
            self.submit(job_id)
        if job_ids:
            logger.info(f"Resuming {len(job_ids)} unfinished jobs")
        return len(job_ids)

    async def run(self, job_id: str) -> None:
        """
        Run a job to a terminal state.

        Never raises: provider failures are absorbed by the policy table and
        anything unexpected fails the job with InternalError.
        """
        self._running.add(job_id)
        try:
            async with self.store.writer(job_id):
                try:
                    await self._execute(job_id)
                except JobNotFoundError:
                    logger.warning(f"Job {job_id} disappeared before it could run")
                except StageFailedError as e:
                    logger.error(f"Job {job_id} failed: {e}")
                    await self._fail(job_id, e.reason, e.detail)
                except Exception as e:
                    logger.exception(f"Unexpected error while running job {job_id}")
                    await self._fail(job_id, INTERNAL_ERROR, f"{type(e).__name__}: {e}")
        finally:
            self._running.discard(job_id)

    # ==================== PIPELINE ====================

    async def _execute(self, job_id: str) -> None:
        job = await self.store.get(job_id)
        if job.is_terminal:
            return
        await self.store.set_state(job_id, "running")

        async def report_polling(fraction: float) -> None:
            percent = PHASE_PROGRESS["transcription_running"] + int(fraction * 30)
            await self.store.set_progress(
                job_id,
                "transcription_running",
                min(percent, TRANSCRIPTION_PROGRESS_CEILING),
                "Waiting for transcription",
            )

        transcript = self._resumed(job, "transcription", Transcript)
        if transcript is None:
            await self._progress(job_id, "transcription_running", "Transcribing audio")
            transcript = await self._run_stage(
                job_id,
                "transcription",
                self.transcription.provider.name,
                lambda: self.transcription.transcribe(job.input_audio, on_progress=report_polling),
            )

        sentiment = self._resumed(job, "sentiment", SentimentResult)
        if sentiment is None:
            await self._progress(job_id, "sentiment_running", "Analyzing mood")
            sentiment = await self._run_stage(
                job_id,
                "sentiment",
                self.sentiment.provider.name,
                lambda: self.sentiment.classify(transcript),
                fallback=lambda: (SentimentResult.neutral_default(), NEUTRAL_PROVIDER),
            )

        prompt = self._resumed(job, "prompt_synthesis", Prompt)
        if prompt is None:
            await self._progress(job_id, "prompt_synthesis", "Composing image prompt")

            async def synthesize() -> Prompt:
                return self.synthesizer.synthesize(transcript, sentiment, job.context, job.style)

            prompt = await self._run_stage(job_id, "prompt_synthesis", SYNTHESIZER_PROVIDER, synthesize)

        # The image provider only ever sees a prompt that carries the transcript.
        prompt = ensure_faithful(prompt, transcript.text)

        await self._progress(job_id, "image_running", "Generating image")
        await self._run_stage(
            job_id,
            "image_generation",
            self.image.provider.name,
            lambda: self.image.render(prompt, self.dimensions, job_id),
            fallback=lambda: (self.image.fallback(prompt, self.dimensions), FALLBACK_PROVIDER),
        )

        await self.store.set_state(job_id, "succeeded", phase="succeeded")
        await self._progress(job_id, "succeeded", "Image ready")

    async def _run_stage(
        self,
        job_id: str,
        stage: str,
        provider: str,
        call: Callable[[], Awaitable[M]],
        fallback: Optional[Callable[[], tuple[M, str]]] = None,
    ) -> M:
        """
        Execute one stage under its policy.

        Each attempt is bounded by the policy timeout and recorded as a
        StageResult. Retryable failures back off per the schedule; once
        attempts run out the stage either degrades to `fallback` or fails.
        Stages with a fallback also degrade straight away on unexpected errors.

        Raises:
            StageFailedError: If the policy says fail and attempts are exhausted
        """
        policy = self.policies[stage]
        last_error = ""

        for attempt in range(1, policy.max_attempts + 1):
            started_at = utcnow()
            try:
                value = await asyncio.wait_for(call(), timeout=policy.timeout_seconds)
            except RETRYABLE_ERRORS as e:
                last_error = str(e) or f"{type(e).__name__} after {policy.timeout_seconds:g}s"
                if attempt == policy.max_attempts:
                    break
                await self.store.append_stage_result(
                    job_id,
                    StageResult(
                        stage=stage,  # type: ignore[arg-type]
                        status="failed_retryable",
                        provider=provider,
                        attempt=attempt,
                        started_at=started_at,
                        completed_at=utcnow(),
                        error=last_error,
                    ),
                )
                delay = policy.delay_after(attempt)
                logger.warning(
                    f"Job {job_id} {stage} attempt {attempt}/{policy.max_attempts} failed: {last_error}. "
                    f"Retrying in {delay}s..."
                )
                await asyncio.sleep(delay)
                continue
            except Exception as e:
                if policy.on_exhaustion != OnExhaustion.DEGRADE or fallback is None:
                    raise
                # Not a provider failure, so retrying would not help.
                logger.exception(f"Job {job_id} {stage} attempt {attempt} raised unexpectedly")
                last_error = f"{type(e).__name__}: {e}"
                break

            await self.store.append_stage_result(
                job_id,
                StageResult(
                    stage=stage,  # type: ignore[arg-type]
                    status="succeeded",
                    provider=provider,
                    attempt=attempt,
                    started_at=started_at,
                    completed_at=utcnow(),
                    output=value.model_dump(mode="json"),
                    confidence=getattr(value, "confidence", None),
                ),
            )
            return value

        if policy.on_exhaustion == OnExhaustion.DEGRADE and fallback is not None:
            value, fallback_provider = fallback()
            await self.store.append_stage_result(
                job_id,
                StageResult(
                    stage=stage,  # type: ignore[arg-type]
                    status="failed_fallback",
                    provider=fallback_provider,
                    attempt=attempt,
                    started_at=started_at,
                    completed_at=utcnow(),
                    output=value.model_dump(mode="json"),
                    confidence=getattr(value, "confidence", None),
                    error=last_error,
                ),
            )
            logger.warning(f"Job {job_id} {stage} degraded to {fallback_provider}: {last_error}")
            return value

        await self.store.append_stage_result(
            job_id,
            StageResult(
                stage=stage,  # type: ignore[arg-type]
                status="failed_fatal",
                provider=provider,
                attempt=attempt,
                started_at=started_at,
                completed_at=utcnow(),
                error=last_error,
            ),
        )
        raise StageFailedError(stage, FAILURE_REASONS.get(stage, INTERNAL_ERROR), last_error)

    # ==================== HELPERS ====================

    @staticmethod
    def _resumed(job: Job, stage: str, model: type[M]) -> Optional[M]:
        """Output of a stage settled in an earlier run, if any."""
        result = job.authoritative(stage)
        if result is None or not result.settled or not result.output:
            return None
        logger.info(f"Job {job.job_id} reusing {stage} result from attempt {result.attempt}")
        return model.model_validate(result.output)

    async def _progress(self, job_id: str, phase: JobPhase, message: str) -> None:
        await self.store.set_progress(job_id, phase, PHASE_PROGRESS[phase], message)

    async def _fail(self, job_id: str, reason: str, detail: str) -> None:
        try:
            await self.store.set_state(job_id, "failed", phase="failed", reason=reason, error_message=detail)
            await self.store.set_progress(job_id, "failed", PHASE_PROGRESS["failed"], reason)
        except JobNotFoundError:
            logger.warning(f"Job {job_id} purged before its failure was recorded")

    @property
    def active(self) -> int:
        """Number of jobs currently being run, however they were started."""
        return len(self._running)


def job_result(job: Job) -> Optional[dict[str, Any]]:
    """Assemble the client-facing result of a succeeded job from its stage outputs."""
    if job.state != "succeeded":
        return None

    def output(stage: str) -> Optional[dict[str, Any]]:
        result = job.authoritative(stage)
        return result.output if result else None

    return {
        "transcript": output("transcription"),
        "sentiment": output("sentiment"),
        "prompt": output("prompt_synthesis"),
        "image": output("image_generation"),
    }
