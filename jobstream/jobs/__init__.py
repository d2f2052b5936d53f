from .publisher import JobReporter, ProgressPublisher
from .registry import JobRegistry

__all__ = ["JobRegistry", "JobReporter", "ProgressPublisher"]
