"""In-process job store with an optional Supabase mirror."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import uuid4

from fastapi.concurrency import run_in_threadpool

from vomage.models.audio import AudioRef
from vomage.models.job import STAGE_ORDER, Job, JobPhase, JobProgress, JobState, StageResult, utcnow
from vomage.models.prompt import SituationalContext
from vomage.utils.errors import JobNotFoundError

logger = logging.getLogger(__name__)


class JobStore:
    """
    Authoritative record of job state.

    Readers receive copies; only the orchestrator mutates jobs, and it does so
    while holding the job's writer lock.
    """

    def __init__(
        self,
        retention: timedelta = timedelta(hours=6),
        supabase_client: Optional[Any] = None,
        table: str = "pipeline_jobs",
    ) -> None:
        """
        Initialize the JobStore.

        Args:
            retention: How long a job is kept after its last update or collection
            supabase_client: Optional Supabase client for write-through persistence
            table: Table used for the mirror
        """
        self.retention = retention
        self.supabase = supabase_client
        self.table = table
        self._jobs: dict[str, Job] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._collected_at: dict[str, datetime] = {}

    # ==================== MIRROR ====================

    async def _persist(self, job: Job) -> None:
        """Write a job through to the mirror table; failures are logged only."""
        if self.supabase is None:
            return
        row = {
            "job_id": job.job_id,
            "state": job.state,
            "payload": job.model_dump(mode="json"),
            "updated_at": job.updated_at.isoformat(),
        }
        try:
            await run_in_threadpool(self.supabase.table(self.table).upsert(row).execute)
        except Exception as e:
            logger.error(f"Failed to mirror job {job.job_id}: {e}")

    async def _load(self, job_id: str) -> Optional[Job]:
        if self.supabase is None:
            return None
        try:
            result = await run_in_threadpool(
                self.supabase.table(self.table).select("*").eq("job_id", job_id).execute
            )
        except Exception as e:
            logger.error(f"Failed to load job {job_id} from mirror: {e}")
            return None
        if not result.data:
            return None
        job = Job.model_validate(result.data[0]["payload"])
        self._jobs[job.job_id] = job
        return job

    async def _forget(self, job_id: str) -> None:
        if self.supabase is None:
            return
        try:
            await run_in_threadpool(self.supabase.table(self.table).delete().eq("job_id", job_id).execute)
        except Exception as e:
            logger.error(f"Failed to delete job {job_id} from mirror: {e}")

    # ==================== CRUD ====================

    async def _require(self, job_id: str) -> Job:
        job = self._jobs.get(job_id) or await self._load(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def _touch(self, job: Job) -> None:
        job.updated_at = utcnow()
        await self._persist(job)

    async def create(
        self,
        audio: AudioRef,
        context: Optional[SituationalContext] = None,
        style: str = "abstract",
    ) -> str:
        """
        Register a new job for validated audio.

        Returns:
            The new job_id
        """
        job = Job(job_id=uuid4().hex, input_audio=audio, context=context, style=style)  # type: ignore[arg-type]
        self._jobs[job.job_id] = job
        await self._persist(job)
        logger.info(f"Created job {job.job_id} for {audio.ref}")
        return job.job_id

    async def get(self, job_id: str) -> Job:
        """
        Get a snapshot of a job.

        Raises:
            JobNotFoundError: If the job is unknown or purged
        """
        return (await self._require(job_id)).model_copy(deep=True)

    async def append_stage_result(self, job_id: str, result: StageResult) -> None:
        """
        Append one attempt's result to the job history.

        Raises:
            JobNotFoundError: If the job is unknown
            ValueError: If the result belongs to a stage earlier than the last recorded one
        """
        job = await self._require(job_id)
        if job.stage_results:
            last = STAGE_ORDER.index(job.stage_results[-1].stage)
            if STAGE_ORDER.index(result.stage) < last:
                raise ValueError(
                    f"Stage {result.stage} recorded after {job.stage_results[-1].stage} for job {job_id}"
                )
        job.stage_results.append(result)
        await self._touch(job)

    async def set_state(
        self,
        job_id: str,
        state: JobState,
        phase: Optional[JobPhase] = None,
        reason: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        job = await self._require(job_id)
        job.state = state
        if phase is not None:
            job.phase = phase
        if reason is not None:
            job.reason = reason
        if error_message is not None:
            job.error_message = error_message
        await self._touch(job)
        logger.info(f"Job {job_id} is now {state} ({job.phase})")

    async def set_progress(self, job_id: str, phase: JobPhase, percent: int, message: str) -> None:
        job = await self._require(job_id)
        job.phase = phase
        job.progress = JobProgress(stage=phase, percent=percent, message=message)
        await self._touch(job)

    def writer(self, job_id: str) -> asyncio.Lock:
        """Per-job lock serializing stage execution."""
        return self._locks.setdefault(job_id, asyncio.Lock())

    # ==================== RETENTION ====================

    async def mark_collected(self, job_id: str, now: Optional[datetime] = None) -> None:
        """Record that a caller has read the terminal result (first read wins)."""
        await self._require(job_id)
        self._collected_at.setdefault(job_id, now or utcnow())

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Drop jobs whose retention window has passed.

        The window starts at the later of the last update and collection.

        Returns:
            Number of purged jobs
        """
        now = now or utcnow()
        expired = []
        for job_id, job in self._jobs.items():
            anchor = max(job.updated_at, self._collected_at.get(job_id, job.updated_at))
            if anchor + self.retention <= now:
                expired.append(job_id)

        for job_id in expired:
            self._jobs.pop(job_id, None)
            self._locks.pop(job_id, None)
            self._collected_at.pop(job_id, None)
            await self._forget(job_id)

        if expired:
            logger.info(f"Purged {len(expired)} expired jobs")
        return len(expired)

    async def unfinished(self) -> list[str]:
        """Ids of jobs that have not reached a terminal state, mirror included."""
        if self.supabase is not None:
            try:
                result = await run_in_threadpool(
                    self.supabase.table(self.table).select("*").in_("state", ["created", "running"]).execute
                )
                for row in result.data or []:
                    job = Job.model_validate(row["payload"])
                    self._jobs.setdefault(job.job_id, job)
            except Exception as e:
                logger.error(f"Failed to list unfinished jobs from mirror: {e}")
        return [job_id for job_id, job in self._jobs.items() if not job.is_terminal]

    def counts(self) -> dict[str, int]:
        """Number of jobs per state."""
        counts: dict[str, int] = {}
        for job in self._jobs.values():
            counts[job.state] = counts.get(job.state, 0) + 1
        return counts

    def __len__(self) -> int:
        return len(self._jobs)
