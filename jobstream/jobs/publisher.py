"""ProgressPublisher -- the façade worker code uses to report progress."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from jobstream.errors import (
    JobNotFound,
    JobNotRunning,
    ProgressOutOfRange,
    RegressiveProgress,
    UnknownJob,
)
from jobstream.models.enums import JobState
from jobstream.models.job import ProgressEvent

from .registry import JobEntry, JobRegistry

logger = logging.getLogger(__name__)

COMPLETE = 100


class JobReporter:
    """Progress handle bound to a single job, handed to worker code."""

    def __init__(self, publisher: ProgressPublisher, job_id: str) -> None:
        self._publisher = publisher
        self.job_id = job_id

    async def emit(self, step: str, progress: int) -> ProgressEvent:
        return await self._publisher.emit(self.job_id, step, progress)

    async def fail(self, reason: str) -> ProgressEvent:
        return await self._publisher.fail(self.job_id, reason)


Worker = Callable[[JobReporter], Awaitable[None]]


class ProgressPublisher:
    """Validates worker progress and pushes it into the job's channel.

    Publishing 100 completes the job and closes its channel; ``fail``
    closes it with a terminal failure record.
    """

    def __init__(self, registry: JobRegistry) -> None:
        self._registry = registry

    def bind(self, job_id: str) -> JobReporter:
        return JobReporter(self, job_id)

    def start(self, job_id: str) -> None:
        """Mark a pending job as running (the worker has started)."""
        self._registry.mark_state(job_id, JobState.RUNNING)

    async def emit(self, job_id: str, step: str, progress: int) -> ProgressEvent:
        entry = self._lookup(job_id)
        async with entry.emit_lock:
            job = entry.job
            if job.state is not JobState.RUNNING:
                raise JobNotRunning(job_id, job.state.value)
            if not 0 <= progress <= COMPLETE:
                raise ProgressOutOfRange(job_id, progress)
            if progress < job.last_progress:
                raise RegressiveProgress(job_id, job.last_progress, progress)

            event = ProgressEvent(seq=job.next_seq, step=step, progress=progress)
            await entry.channel.publish(event)
            job.next_seq += 1
            job.last_step = step
            job.last_progress = progress
            logger.debug(f"Job {job_id} seq={event.seq} {progress}% {step!r}")

            if progress == COMPLETE:
                self._registry.mark_state(job_id, JobState.COMPLETED)
                entry.channel.close()
                logger.info(f"Job {job_id} completed after {job.next_seq} events")
        return event

    async def fail(self, job_id: str, reason: str) -> ProgressEvent:
        """Fail a running job; subscribers receive ``reason`` as the last record."""
        entry = self._lookup(job_id)
        async with entry.emit_lock:
            if entry.job.state is not JobState.RUNNING:
                raise JobNotRunning(job_id, entry.job.state.value)
            return self._close_failed(entry, reason)

    async def run(self, job_id: str, worker: Worker) -> None:
        """Run ``worker`` as the job's producer.

        Any exception escaping the worker, cancellation included, fails the
        job, so subscribers always see the stream end.
        """
        self.start(job_id)
        reporter = self.bind(job_id)
        try:
            await worker(reporter)
        except Exception as e:
            logger.exception(f"Worker for job {job_id} raised")
            job = self._registry.get_job(job_id)
            if job.state is JobState.RUNNING:
                await self.fail(job_id, str(e) or type(e).__name__)
            return
        except asyncio.CancelledError:
            entry = self._registry.get_entry(job_id)
            if entry.job.state is JobState.RUNNING:
                logger.warning(f"Worker for job {job_id} was cancelled")
                self._close_failed(entry, "Job cancelled")
            raise

        job = self._registry.get_job(job_id)
        if job.state is JobState.RUNNING:
            logger.warning(f"Worker for job {job_id} returned before reaching 100%")
            await self.fail(job_id, "Worker finished without completing")

    def _close_failed(self, entry: JobEntry, reason: str) -> ProgressEvent:
        # Synchronous so it can also run while a cancellation is propagating.
        job = entry.job
        event = ProgressEvent(
            seq=job.next_seq,
            step=job.last_step or "",
            progress=max(job.last_progress, 0),
            error=reason,
        )
        self._registry.mark_state(job.job_id, JobState.FAILED)
        job.next_seq += 1
        job.error = reason
        entry.channel.close(final_event=event)
        logger.info(f"Job {job.job_id} failed: {reason}")
        return event

    def _lookup(self, job_id: str) -> JobEntry:
        try:
            return self._registry.get_entry(job_id)
        except JobNotFound:
            raise UnknownJob(job_id) from None
