"""
Single-writer progress channel bound to one streaming response.
"""
import asyncio
import json
from typing import AsyncIterator, Awaitable, Optional, Set, Union

from fastapi.responses import StreamingResponse

from talent_match.models.events import (
    ErrorEvent,
    ExtractionComplete,
    LogEvent,
    LogLevel,
    MatchComplete,
    ProgressCounter,
    ProgressEvent,
)
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)

_LOG_LEVELS = {"info": "info", "success": "info", "error": "error"}


def format_event(event: ProgressEvent) -> str:
    """Frame one event as a `data:` line followed by a blank line."""
    return f"data: {json.dumps(event.payload(), ensure_ascii=False)}\n\n"


class ProgressEmitter:
    """
    Append-only event sink for one request.

    emit() frames and enqueues a whole event synchronously, so concurrent
    callers on the event loop can never interleave partial events. The first
    terminal event (complete or error) closes the emitter and every later
    emit is a no-op. stream() is the only reader; if it goes away before the
    terminal event the emitter detaches and keeps accepting (and dropping)
    events so the producer can run to completion.
    """

    def __init__(self, channel: str = "stream"):
        self.channel = channel
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._closed = False
        self._detached = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    def emit(self, event: ProgressEvent) -> bool:
        """Write one event. Returns False when the emitter is already closed."""
        if self._closed:
            return False
        if event.terminal:
            self._closed = True
        if not self._detached:
            self._queue.put_nowait(format_event(event))
            if event.terminal:
                self._queue.put_nowait(None)
        return True

    def log(self, level: LogLevel, message: str) -> bool:
        getattr(logger, _LOG_LEVELS.get(level, "info"))(f"[{self.channel}] {message}")
        return self.emit(LogEvent(level=level, message=message))

    def progress(self, current: int, total: int, step: Optional[str] = None) -> bool:
        return self.emit(ProgressCounter(current=current, total=total, step=step))

    def complete(self, event: Union[MatchComplete, ExtractionComplete]) -> bool:
        logger.info(f"[{self.channel}] complete: {event.message}")
        return self.emit(event)

    def fail(self, message: str) -> bool:
        # The web client only treats a bare message as fatal when it says so
        if "error" not in message and "failed" not in message:
            message = f"Request failed: {message}"
        logger.error(f"[{self.channel}] {message}")
        return self.emit(ErrorEvent(message=message))

    async def stream(self) -> AsyncIterator[str]:
        """Yield framed events in emission order until the terminal event."""
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    return
                yield frame
        finally:
            if not self._closed:
                logger.info(f"[{self.channel}] client disconnected before completion, detaching")
                self._detached = True
                while not self._queue.empty():
                    self._queue.get_nowait()


SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}

# Strong references to running orchestrations; a disconnected client must not let them be collected
_running: Set["asyncio.Task"] = set()


def stream_response(emitter: ProgressEmitter, run: Awaitable) -> StreamingResponse:
    """
    Start `run` as its own task and stream the emitter's frames as text/event-stream.

    The task owns the orchestration, so a client disconnect only ends this
    generator; persistence still runs to completion.
    """
    task = asyncio.ensure_future(run)
    _running.add(task)
    task.add_done_callback(_running.discard)

    async def body() -> AsyncIterator[str]:
        async for frame in emitter.stream():
            yield frame
        await task

    return StreamingResponse(body(), media_type="text/event-stream", headers=SSE_HEADERS)
