"""JobRegistry -- job ids mapped to their state and EventChannel."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from jobstream.errors import InvalidTransition, JobNotFound
from jobstream.models.enums import JobState
from jobstream.models.job import Job
from jobstream.streaming.channel import DEFAULT_CAPACITY, EventChannel

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 300.0

# Allowed lifecycle edges; terminal states only leave the registry by eviction.
_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.RUNNING}),
    JobState.RUNNING: frozenset({JobState.COMPLETED, JobState.FAILED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
}


@dataclass
class JobEntry:
    """Everything the registry owns for one job."""

    job: Job
    channel: EventChannel
    emit_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    finished_at_monotonic: Optional[float] = None


class JobRegistry:
    """Thread-safe map of job id -> JobEntry with retention-based eviction.

    Every lookup and mutation of the map happens under one short lock that
    is never held across an await, so unrelated jobs never wait on each
    other.
    """

    def __init__(
        self,
        channel_capacity: int = DEFAULT_CAPACITY,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.channel_capacity = channel_capacity
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._entries: dict[str, JobEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._entries

    def create_job(self) -> str:
        """Allocate a new pending job and its channel; return the job id."""
        job_id = uuid4().hex
        entry = JobEntry(
            job=Job(job_id=job_id),
            channel=EventChannel(job_id, capacity=self.channel_capacity),
        )
        with self._lock:
            self._entries[job_id] = entry
        logger.info(f"Created job {job_id}")
        return job_id

    def get_entry(self, job_id: str) -> JobEntry:
        with self._lock:
            entry = self._entries.get(job_id)
        if entry is None:
            raise JobNotFound(job_id)
        return entry

    def get_channel(self, job_id: str) -> EventChannel:
        return self.get_entry(job_id).channel

    def get_job(self, job_id: str) -> Job:
        return self.get_entry(job_id).job

    def mark_state(self, job_id: str, state: JobState) -> Job:
        """Move a job along its lifecycle.

        Raises JobNotFound for unknown ids and InvalidTransition for any
        edge other than pending->running, running->completed and
        running->failed.
        """
        with self._lock:
            entry = self._entries.get(job_id)
            if entry is None:
                raise JobNotFound(job_id)
            job = entry.job
            if state not in _TRANSITIONS[job.state]:
                raise InvalidTransition(job_id, job.state.value, state.value)
            job.state = state
            if state.is_terminal:
                job.finished_at = datetime.now(tz=timezone.utc)
                entry.finished_at_monotonic = self._clock()
        logger.info(f"Job {job_id} -> {state.value}")
        return job

    def evict_expired(self) -> list[str]:
        """Drop terminal jobs older than the retention window.

        Channels that are somehow still open get closed so that no reader
        is left waiting on an evicted job.
        """
        cutoff = self._clock() - self.retention_seconds
        with self._lock:
            expired = [
                job_id
                for job_id, entry in self._entries.items()
                if entry.finished_at_monotonic is not None
                and entry.finished_at_monotonic < cutoff
            ]
            evicted = [self._entries.pop(job_id) for job_id in expired]
        for entry in evicted:
            entry.channel.close()
            logger.info(f"Evicted job {entry.job.job_id} ({entry.job.state.value})")
        return expired

    async def run_sweeper(self, interval: float) -> None:
        """Evict expired jobs every ``interval`` seconds until cancelled."""
        logger.info(
            f"Eviction sweeper started (interval={interval}s, "
            f"retention={self.retention_seconds}s)"
        )
        try:
            while True:
                await asyncio.sleep(interval)
                self.evict_expired()
        finally:
            logger.info("Eviction sweeper stopped")
