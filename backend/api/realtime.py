"""
Change notifications for live game views.

After every saved change the routes publish a small {"type": "update"} event
for the game; clients listening on the event stream then fetch their own view.
Events carry no game state, so nothing private leaks through the stream.
"""
import asyncio
import json
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config import sse_keepalive_seconds
from .logging_config import activity_logger, get_logger
from .monitoring import event_stream_connections

logger = get_logger("realtime")

Event = Dict[str, Any]
Handler = Callable[[Event], None]


def now_ms() -> int:
    return int(time.time() * 1000)


class NotificationBus(ABC):
    """
    Publish/subscribe for per-game change events.

    The routes only depend on this interface, so a pub/sub backed bus can
    replace the in-process one when several server processes share a database.
    """

    @abstractmethod
    def subscribe(self, game_id: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler for one game.

        Returns:
            A function that removes the handler again
        """

    @abstractmethod
    def publish(self, game_id: str) -> None:
        """Tell every subscriber of the game that it changed."""


class InProcessNotificationBus(NotificationBus):
    """Observer registry for a single server process."""

    def __init__(self):
        # game_id -> handlers
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, game_id: str, handler: Handler) -> Callable[[], None]:
        """Register a handler; returns a function that removes it again."""
        with self._lock:
            self._handlers.setdefault(game_id, []).append(handler)

        def unsubscribe():
            with self._lock:
                handlers = self._handlers.get(game_id)
                if handlers and handler in handlers:
                    handlers.remove(handler)
                    if not handlers:
                        del self._handlers[game_id]

        return unsubscribe

    def publish(self, game_id: str) -> None:
        event = {"type": "update", "game_id": game_id, "at": now_ms()}
        with self._lock:
            handlers = list(self._handlers.get(game_id, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                # One broken listener must not stop the others
                logger.error("notification_handler_error", game_id=game_id, error=str(e))

    def subscriber_count(self, game_id: str) -> int:
        with self._lock:
            return len(self._handlers.get(game_id, []))


def format_sse(data: Event, event: Optional[str] = None) -> str:
    """Encode one server-sent event."""
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data)}")
    return "\n".join(lines) + "\n\n"


async def game_event_stream(
    game_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    bus: Optional[NotificationBus] = None,
    keepalive: Optional[float] = None,
):
    """
    Server-sent events for one game: a hello, then one update per change and a
    ping comment whenever the stream has been quiet for `keepalive` seconds.

    Handlers may be called from worker threads, so events are handed to the
    event loop with call_soon_threadsafe.
    """
    bus = bus or notification_bus
    keepalive = keepalive if keepalive is not None else sse_keepalive_seconds()
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[Event]" = asyncio.Queue()

    def on_event(event: Event):
        loop.call_soon_threadsafe(queue.put_nowait, event)

    unsubscribe = bus.subscribe(game_id, on_event)
    event_stream_connections.inc()
    activity_logger.log_stream_event("connect", game_id)
    try:
        yield format_sse({"type": "hello", "game_id": game_id, "at": now_ms()}, event="hello")
        while True:
            if await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                yield f": ping {now_ms()}\n\n"
                continue
            yield format_sse(event, event="update")
    finally:
        unsubscribe()
        event_stream_connections.dec()
        activity_logger.log_stream_event("disconnect", game_id)


# Global notification bus instance
notification_bus = InProcessNotificationBus()
