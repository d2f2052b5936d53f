"""jobstream: progress of long-running jobs pushed to browsers over SSE."""

__version__ = "0.1.0"
