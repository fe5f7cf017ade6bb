"""Progress events emitted while an agent run is in flight."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_EVENT_BUFFER = 100


class EventType(str, Enum):
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    PARTIAL_TEXT = "partial_text"
    COMPLETE = "complete"
    ERROR = "error"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json()


class _Closed:
    pass


class EventStream:
    """Bounded, non-blocking event channel between a run and one observer.

    ``emit`` never waits: when the buffer is full the event is dropped and
    counted. Iterating the stream yields events until ``close`` has been
    called and the buffer is drained.
    """

    def __init__(self, maxsize: int = DEFAULT_EVENT_BUFFER, *, logger: logging.Logger | None = None) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._queue: asyncio.Queue[Event | _Closed] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._sentinel = _Closed()
        self._logger = logger or logging.getLogger(__name__)
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event_type: EventType, data: Mapping[str, Any] | None = None) -> Event | None:
        """Publish an event; returns it, or None if it was dropped."""

        if self._closed:
            self._logger.debug("event stream closed, ignoring %s event", event_type.value)
            return None

        event = Event(type=event_type, data=dict(data or {}))
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            self._logger.warning("event buffer full, dropped %s event (%d dropped)", event_type.value, self.dropped)
            return None
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # A full buffer means the reader is not blocked; it stops once drained.
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(self._sentinel)

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if isinstance(item, _Closed):
                return
            yield item


def format_sse(event: Event) -> str:
    """Render an event as a server-sent-events frame."""

    return f"event: {event.type.value}\ndata: {event.to_json()}\n\n"


__all__ = ["DEFAULT_EVENT_BUFFER", "Event", "EventStream", "EventType", "format_sse"]
