"""Exception types raised by the registry, channels and publisher."""

from __future__ import annotations


class JobStreamError(Exception):
    """Base class for every error raised by jobstream."""


class JobNotFound(JobStreamError):
    """The job id is unknown or the job has already been evicted."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransition(JobStreamError):
    """A job state change outside the allowed lifecycle."""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"Job {job_id}: cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class ChannelClosed(JobStreamError):
    """Publish attempted on a channel that has been closed."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Event channel for job {job_id} is closed")
        self.job_id = job_id


class PublisherError(JobStreamError):
    """Misuse of the progress publisher by worker code."""


class UnknownJob(PublisherError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Unknown job: {job_id}")
        self.job_id = job_id


class JobNotRunning(PublisherError):
    def __init__(self, job_id: str, state: str) -> None:
        super().__init__(f"Job {job_id} is {state}, not running")
        self.job_id = job_id
        self.state = state


class RegressiveProgress(PublisherError):
    def __init__(self, job_id: str, last: int, attempted: int) -> None:
        super().__init__(
            f"Job {job_id}: progress {attempted} is lower than last published {last}"
        )
        self.job_id = job_id
        self.last = last
        self.attempted = attempted


class ProgressOutOfRange(PublisherError):
    def __init__(self, job_id: str, progress: int) -> None:
        super().__init__(f"Job {job_id}: progress {progress} is outside 0-100")
        self.job_id = job_id
        self.progress = progress
