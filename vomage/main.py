"""Application entry point for the Vomage API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from vomage.api.deps import PipelineContainer, build_container
from vomage.api.routes import (
    generic_exception_handler,
    router,
    validation_exception_handler,
    vomage_exception_handler,
)
from vomage.config import get_settings
from vomage.services.job_store import JobStore
from vomage.utils.errors import VomageError

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def purge_loop(store: JobStore, interval: float) -> None:
    """Periodically drop jobs past their retention window."""
    while True:
        await asyncio.sleep(interval)
        try:
            await store.purge_expired()
        except Exception:
            logger.exception("Job purge failed")


def create_app(container: Optional[PipelineContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        container: Pre-built dependencies (tests inject fakes here); built from
            settings at startup when omitted

    Returns:
        Configured FastAPI app
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = get_settings()
        configure_logging(settings.log_level)

        app.state.container = container or build_container(settings)
        gc_task = asyncio.create_task(
            purge_loop(app.state.container.store, app.state.container.settings.gc_interval_seconds)
        )
        await app.state.container.orchestrator.recover()
        logger.info("Vomage pipeline ready")
        try:
            yield
        finally:
            gc_task.cancel()
            await app.state.container.aclose()

    app = FastAPI(title="Vomage API", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(VomageError, vomage_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("vomage.main:app", host="0.0.0.0", port=3000, reload=True)
