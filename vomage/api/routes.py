"""FastAPI routes for the Vomage pipeline API."""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, get_args

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from vomage.api.deps import PipelineContainer, get_container
from vomage.models.job import StageResult
from vomage.models.prompt import ImageStyle, SituationalContext
from vomage.services.orchestrator import job_result
from vomage.utils.errors import IngestValidationError, JobNotFoundError, VomageError

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


# ==================== Error Response Model ====================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
    error_type: str
    errors: Optional[List[Dict[str, Any]]] = None


# ==================== Exception Handlers ====================


async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Validation error",
            "error_type": "ValidationError",
            "errors": json.loads(exc.json()),
        },
    )


async def vomage_exception_handler(request: Request, exc: VomageError) -> JSONResponse:
    """Handle application-specific errors."""
    status_code = 500
    if isinstance(exc, IngestValidationError):
        status_code = 400
    elif isinstance(exc, JobNotFoundError):
        status_code = 404

    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, IngestValidationError):
        content["detail"] = exc.message
        content["code"] = exc.code
    return JSONResponse(status_code=status_code, content=content)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error_type": "InternalError",
        },
    )


# ==================== Request/Response Models ====================


class SubmitResponse(BaseModel):
    """Response model for job submission."""

    job_id: str
    state: str
    message: str


class StatusResponse(BaseModel):
    """Response model for job status."""

    job_id: str
    state: str
    stage: str
    progress: int
    message: str
    result: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StagesResponse(BaseModel):
    """Response model for stage history."""

    job_id: str
    stage_results: List[StageResult]


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str
    providers: Dict[str, Dict[str, Any]]
    jobs: Dict[str, int]
    active_runs: int


def parse_context(raw: Optional[str]) -> Optional[SituationalContext]:
    """Parse the optional context form field; malformed context is ignored."""
    if not raw or not raw.strip():
        return None
    try:
        return SituationalContext.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed context: {e.error_count()} errors")
        return None


# ==================== Endpoints ====================


@router.post(
    "/jobs",
    response_model=SubmitResponse,
    status_code=202,
    responses={400: {"model": ErrorResponse}},
)
async def submit_job(
    background_tasks: BackgroundTasks,
    audio: UploadFile = File(...),
    context: Optional[str] = Form(default=None),
    style: Optional[str] = Form(default=None),
    container: PipelineContainer = Depends(get_container),
) -> SubmitResponse:
    """
    Validate an uploaded clip and start its pipeline.

    The upload is rejected with 400 before any provider is called if it fails
    validation.
    """
    data = await audio.read()
    audio_ref = await container.ingest.validate(data, audio.content_type)

    settings = container.settings
    chosen_style = style or settings.default_image_style
    if chosen_style not in get_args(ImageStyle):
        logger.warning(f"Unknown style {chosen_style!r}, using {settings.default_image_style}")
        chosen_style = settings.default_image_style

    job_id = await container.store.create(audio_ref, parse_context(context), chosen_style)
    background_tasks.add_task(container.orchestrator.run, job_id)

    return SubmitResponse(job_id=job_id, state="created", message="Audio accepted, processing started")


@router.get("/jobs/{job_id}", response_model=StatusResponse, responses={404: {"model": ErrorResponse}})
async def get_job(
    job_id: str,
    container: PipelineContainer = Depends(get_container),
) -> StatusResponse:
    """
    Report job state and progress.

    Failed jobs are reported with 200 and their reason; only unknown jobs 404.
    """
    job = await container.store.get(job_id)
    if job.is_terminal:
        await container.store.mark_collected(job_id)

    return StatusResponse(
        job_id=job.job_id,
        state=job.state,
        stage=job.progress.stage,
        progress=job.progress.percent,
        message=job.progress.message,
        result=job_result(job),
        reason=job.reason,
        error_message=job.error_message,
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


@router.get("/jobs/{job_id}/stages", response_model=StagesResponse, responses={404: {"model": ErrorResponse}})
async def get_job_stages(
    job_id: str,
    container: PipelineContainer = Depends(get_container),
) -> StagesResponse:
    """Full attempt history for a job."""
    job = await container.store.get(job_id)
    return StagesResponse(job_id=job.job_id, stage_results=job.stage_results)


@router.get("/health", response_model=HealthResponse)
async def health(container: PipelineContainer = Depends(get_container)) -> HealthResponse:
    """Provider configuration and job counts."""
    orchestrator = container.orchestrator
    providers = {
        "transcription": orchestrator.transcription.provider,
        "sentiment": orchestrator.sentiment.provider,
        "image_generation": orchestrator.image.provider,
    }
    report = {
        stage: {"provider": provider.name, "configured": provider.configured}
        for stage, provider in providers.items()
    }
    status = "ok" if report["transcription"]["configured"] else "degraded"
    return HealthResponse(
        status=status,
        providers=report,
        jobs=container.store.counts(),
        active_runs=orchestrator.active,
    )
