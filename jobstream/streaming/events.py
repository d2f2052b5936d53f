"""SSE frame serialization for progress records."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from jobstream.models.enums import StreamEventType
from jobstream.models.job import ProgressEvent

CONNECTED_COMMENT = ": connected\n\n"


@dataclass
class SSEEvent:
    """A single Server-Sent Event ready for wire serialization."""

    event_type: StreamEventType
    data: dict[str, Any]
    sequence_id: int

    @classmethod
    def from_progress(cls, event: ProgressEvent) -> SSEEvent:
        event_type = StreamEventType.ERROR if event.is_failure else StreamEventType.PROGRESS
        return cls(event_type=event_type, data=event.to_record(), sequence_id=event.seq)

    def to_sse_string(self) -> str:
        """Serialize to SSE wire format.

        Format:
            event: <type>
            data: <json>
            id: <seq>

            (terminated by double newline)
        """
        data_json = json.dumps(self.data, ensure_ascii=False, default=str)
        return f"event: {self.event_type.value}\ndata: {data_json}\nid: {self.sequence_id}\n\n"
