"""SSE streaming infrastructure for job progress."""

from .channel import EventChannel, ReaderHandle
from .dispatcher import StreamDispatcher
from .events import SSEEvent

__all__ = ["EventChannel", "ReaderHandle", "SSEEvent", "StreamDispatcher"]
