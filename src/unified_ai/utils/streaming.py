"""
Progress streaming over Server-Sent Events.

ProgressStream is a single-producer, single-consumer push stream. The
producer emits typed events in order; the consumer iterates SSE frames until
complete() or close() ends the stream. Nothing is buffered beyond what the
producer has already sent.

Frame format:
    data: {"type": ..., "message": ..., "data": ..., "timestamp": ISO-8601}\n\n

Public API:
    EVENT_TYPES
    StreamEvent
    ProgressStream
    ProgressTracker(total, send_fn)
    sse_headers()                              → dict
    data_stream_response(text, thread_id=None) → StreamingResponse
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional, Union

from fastapi.responses import StreamingResponse

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "progress",
    "data",
    "error",
    "complete",
    "plan",
    "phase_start",
    "phase_progress",
    "phase_complete",
)

DATA_STREAM_CHUNK = 100

_CLOSED = object()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class StreamEvent:
    """One progress event."""
    type: str
    message: Optional[str] = None
    data: Any = None
    phase_id: Optional[str] = None
    phase_name: Optional[str] = None
    timestamp: str = field(default_factory=_now_iso)

    def __post_init__(self):
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unknown stream event type '{self.type}'")

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"type": self.type}
        if self.message is not None:
            out["message"] = self.message
        if self.data is not None:
            out["data"] = self.data
        if self.phase_id is not None:
            out["phase_id"] = self.phase_id
        if self.phase_name is not None:
            out["phase_name"] = self.phase_name
        out["timestamp"] = self.timestamp
        return out

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.to_dict())}\n\n"


def sse_headers() -> dict[str, str]:
    return {
        "Content-Type": "text/event-stream",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }


class ProgressStream:
    """Push stream of progress events rendered as SSE frames."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: StreamEvent) -> None:
        if self._closed:
            raise RuntimeError("Progress stream is closed")
        self._queue.put_nowait(event)

    def send_progress(self, message: str) -> None:
        self.send(StreamEvent(type="progress", message=message))

    def send_data(self, data: Any, message: Optional[str] = None) -> None:
        self.send(StreamEvent(type="data", data=data, message=message))

    def send_error(self, error: Union[str, BaseException]) -> None:
        self.send(StreamEvent(type="error", message=str(error)))

    def send_plan(self, plan: Any) -> None:
        self.send(StreamEvent(type="plan", data=plan))

    def send_phase_start(self, phase_id: str, phase_name: str, message: Optional[str] = None) -> None:
        self.send(StreamEvent(type="phase_start", phase_id=phase_id, phase_name=phase_name, message=message))

    def send_phase_progress(
        self, phase_id: str, phase_name: str, progress: float, message: Optional[str] = None,
    ) -> None:
        self.send(StreamEvent(
            type="phase_progress", phase_id=phase_id, phase_name=phase_name,
            data={"progress": progress}, message=message,
        ))

    def send_phase_complete(
        self, phase_id: str, phase_name: str, findings: list[str], message: Optional[str] = None,
    ) -> None:
        self.send(StreamEvent(
            type="phase_complete", phase_id=phase_id, phase_name=phase_name,
            data={"findings": list(findings)}, message=message,
        ))

    def complete(self, data: Any = None) -> None:
        """Emit the terminal event and close the stream."""
        if data is not None:
            self.send(StreamEvent(type="complete", data=data))
        else:
            self.send(StreamEvent(type="complete", message="Stream completed"))
        self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[StreamEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item

    async def iter_sse(self) -> AsyncIterator[str]:
        async for event in self.events():
            yield event.to_sse()

    def to_response(self) -> StreamingResponse:
        return StreamingResponse(self.iter_sse(), headers=sse_headers())


class ProgressTracker:
    """Numbered progress messages: "[n/total] message"."""

    def __init__(self, total: int, send_fn: Callable[[str], None]):
        self._total = total
        self._current = 0
        self._send = send_fn

    @property
    def current(self) -> int:
        return self._current

    def increment(self, message: str) -> None:
        self._current += 1
        self._send(f"[{self._current}/{self._total}] {message}")

    def update(self, message: str) -> None:
        self._send(message)

    def complete(self, message: str = "All tasks completed") -> None:
        self._send(f"✓ {message}")


async def _data_stream_frames(text: str) -> AsyncIterator[str]:
    for start in range(0, len(text), DATA_STREAM_CHUNK):
        yield f"0:{json.dumps(text[start:start + DATA_STREAM_CHUNK])}\n"
        await asyncio.sleep(0)


def data_stream_response(text: str, thread_id: Optional[str] = None) -> StreamingResponse:
    """Stream finished text as data-stream protocol text frames."""
    return StreamingResponse(
        _data_stream_frames(text),
        headers={
            "Content-Type": "text/plain; charset=utf-8",
            "x-vercel-ai-data-stream": "v1",
            "X-Thread-Id": thread_id or "",
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
