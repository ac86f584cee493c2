"""
Server-Sent Events: live selection changes.

Event types:
  - date_changed: the shared selection moved (data: SelectionChange.to_dict())
  - system_status: keep-alive sent while the stream is quiet

SelectionState notifies its listeners synchronously on whichever thread
applied the change (a threadpool worker for sync endpoints), so the bus
never touches a subscriber queue directly; it schedules the put on the
subscriber's own loop.

Wiring (see server.create_app):
    app.state.event_bus = EventBus()
    app.include_router(sse_router)
"""

import asyncio
import json
import logging
import threading
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass, field
from datetime import datetime
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from api.auth import require_auth

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 30
MAX_QUIET_HEARTBEATS = 2
HISTORY_LIMIT_MAX = 500

sse_router = APIRouter(tags=["Events"], dependencies=[Depends(require_auth)])


@dataclass
class Event:
    event_type: str
    data: dict
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_sse(self) -> str:
        """Wire form: id, event and one data line, then a blank line."""
        return f"id: {self.id}\nevent: {self.event_type}\ndata: {json.dumps(self.data)}\n\n"

    def to_dict(self) -> dict:
        return asdict(self)


def create_event(event_type: str, data: dict) -> Event:
    return Event(event_type, data)


class EventBus:
    """Fan-out of events to asyncio queues, safe to publish from any thread."""

    def __init__(self, max_history: int = 100):
        self._subscribers: dict[asyncio.Queue, asyncio.AbstractEventLoop] = {}
        self._history: deque[Event] = deque(maxlen=max_history)
        self._lock = threading.Lock()

    def subscribe(self) -> asyncio.Queue:
        """Register a queue bound to the running event loop."""
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        with self._lock:
            self._subscribers[queue] = loop
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        with self._lock:
            self._subscribers.pop(queue, None)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: Event) -> None:
        with self._lock:
            self._history.append(event)
            targets = list(self._subscribers.items())

        for queue, loop in targets:
            try:
                loop.call_soon_threadsafe(queue.put_nowait, event)
            except RuntimeError:
                # loop already closed: the client is gone
                logger.info("Dropping SSE subscriber whose loop has closed")
                self.unsubscribe(queue)

    def get_history(self) -> list[Event]:
        with self._lock:
            return list(self._history)


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


async def _event_stream(queue: asyncio.Queue, bus: EventBus) -> AsyncIterator[str]:
    """Yield queued events; send a keep-alive on each quiet interval and stop after too many."""
    quiet = 0
    try:
        while quiet <= MAX_QUIET_HEARTBEATS:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_SECONDS)
            except TimeoutError:
                quiet += 1
                yield create_event("system_status", {"status": "connected"}).to_sse()
                continue
            quiet = 0
            yield event.to_sse()
        logger.debug("Closing idle SSE stream")
    finally:
        bus.unsubscribe(queue)


@sse_router.get("/events/stream")
async def stream_events(bus: EventBus = Depends(get_event_bus)) -> StreamingResponse:
    """Live date_changed events as text/event-stream."""
    queue = bus.subscribe()
    return StreamingResponse(
        _event_stream(queue, bus),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@sse_router.get("/events/history")
def event_history(
    limit: int = Query(100, description=f"Most recent events to return, 1-{HISTORY_LIMIT_MAX}"),
    bus: EventBus = Depends(get_event_bus),
):
    """Recent events, oldest first."""
    if not 1 <= limit <= HISTORY_LIMIT_MAX:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {HISTORY_LIMIT_MAX}")
    events = bus.get_history()[-limit:]
    return {"count": len(events), "data": [e.to_dict() for e in events]}
