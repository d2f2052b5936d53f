from __future__ import annotations

from enum import Enum


class JobState(str, Enum):
    """Lifecycle of a tracked job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class StreamEventType(str, Enum):
    """SSE `event:` names written to the progress stream."""

    PROGRESS = "progress"
    ERROR = "error"
