from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .enums import JobState


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class ProgressEvent:
    """One step/percentage update of a job. Immutable once published."""

    seq: int
    step: str
    progress: int
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def to_record(self) -> dict[str, Any]:
        """Return the record pushed to subscribers.

        Progress updates become ``{"step", "progress"}``; the terminal
        failure record becomes ``{"error"}``.
        """
        if self.is_failure:
            return {"error": self.error}
        return {"step": self.step, "progress": self.progress}


@dataclass
class Job:
    """A tracked long-running process and its publishing cursor."""

    job_id: str
    state: JobState = JobState.PENDING
    created_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    last_step: Optional[str] = None
    last_progress: int = -1  # nothing published yet
    next_seq: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready snapshot for the status endpoint."""
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "step": self.last_step,
            "progress": max(self.last_progress, 0),
            "error": self.error,
        }
