from .enums import JobState, StreamEventType
from .job import Job, ProgressEvent

__all__ = ["Job", "JobState", "ProgressEvent", "StreamEventType"]
