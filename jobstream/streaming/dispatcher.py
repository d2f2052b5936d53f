"""StreamDispatcher -- per-subscriber live sequences of a job's progress."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator

from jobstream.models.job import ProgressEvent

from .channel import EventChannel
from .events import CONNECTED_COMMENT, SSEEvent

if TYPE_CHECKING:
    from jobstream.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


class StreamDispatcher:
    """Fans a job's event channel out to independent subscribers.

    Each ``attach`` call gets its own reader on the channel. The reader is
    registered on first iteration and released when the sequence ends,
    is closed, or is cancelled, so a subscriber that goes away never holds
    back the publisher.
    """

    def __init__(self, registry: JobRegistry) -> None:
        self._registry = registry

    def attach(self, job_id: str) -> AsyncGenerator[ProgressEvent, None]:
        """Return the live event sequence for a job.

        Raises JobNotFound right away for unknown or evicted jobs.
        """
        channel = self._registry.get_channel(job_id)
        return self._follow(channel)

    def event_stream(self, job_id: str) -> AsyncGenerator[str, None]:
        """Like ``attach`` but yields SSE frames for a StreamingResponse."""
        events = self.attach(job_id)
        return self._render(events)

    async def _follow(self, channel: EventChannel) -> AsyncGenerator[ProgressEvent, None]:
        reader = channel.subscribe()
        logger.info(f"Subscriber attached to job {channel.job_id} ({channel.reader_count} readers)")
        finished = False
        try:
            async for event in reader:
                yield event
            finished = True
        finally:
            reader.release()
            if finished:
                logger.info(f"Stream for job {channel.job_id} ended")
            else:
                logger.info(f"Subscriber disconnected from job {channel.job_id}")

    async def _render(
        self, events: AsyncGenerator[ProgressEvent, None]
    ) -> AsyncGenerator[str, None]:
        try:
            # SSE comment as connection heartbeat (ignored by browsers)
            yield CONNECTED_COMMENT
            async for event in events:
                yield SSEEvent.from_progress(event).to_sse_string()
        finally:
            await events.aclose()
