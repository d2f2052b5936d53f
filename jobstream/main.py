"""FastAPI application for jobstream: job start, job status and SSE progress."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from functools import partial
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from jobstream.config.settings import Settings
from jobstream.errors import JobNotFound
from jobstream.jobs import JobRegistry, ProgressPublisher
from jobstream.streaming import StreamDispatcher
from jobstream.workers import convert_documents

settings = Settings()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Singletons shared by every request
registry = JobRegistry(
    channel_capacity=settings.channel_capacity,
    retention_seconds=settings.retention_seconds,
)
publisher = ProgressPublisher(registry)
dispatcher = StreamDispatcher(registry)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(registry.run_sweeper(settings.sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="jobstream API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class CreateJobRequest(BaseModel):
    step_delay: Optional[float] = Field(default=None, ge=0)


class CreateJobResponse(BaseModel):
    job_id: str
    state: str


async def run_job(job_id: str, step_delay: float) -> None:
    """Background task: run the conversion worker and publish its progress."""
    await publisher.run(job_id, partial(convert_documents, step_delay=step_delay))


@app.post("/api/jobs", response_model=CreateJobResponse)
async def create_job(background_tasks: BackgroundTasks, body: Optional[CreateJobRequest] = None):
    """Create a job and start its worker without waiting for it."""
    step_delay = settings.step_delay_seconds
    if body is not None and body.step_delay is not None:
        step_delay = body.step_delay

    job_id = registry.create_job()
    background_tasks.add_task(run_job, job_id, step_delay)
    return CreateJobResponse(job_id=job_id, state=registry.get_job(job_id).state.value)


@app.get("/api/jobs/{job_id}/stream")
async def stream_job(job_id: str):
    """SSE endpoint streaming job progress until the job ends."""
    try:
        generator = dispatcher.event_stream(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/api/jobs/{job_id}")
async def get_job(job_id: str):
    """Return the job snapshot (polling fallback)."""
    try:
        job = registry.get_job(job_id)
    except JobNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return job.to_dict()


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "jobs": len(registry)}
