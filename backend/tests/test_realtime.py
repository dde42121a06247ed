"""
Tests for the change notification bus and the server-sent event stream.
"""
import asyncio
import json

from api.realtime import InProcessNotificationBus, format_sse, game_event_stream


def test_publish_reaches_subscribers_of_that_game():
    """Handlers only hear about the game they subscribed to."""
    bus = InProcessNotificationBus()
    received = []
    unsubscribe = bus.subscribe("g1", received.append)
    bus.subscribe("g2", lambda event: received.append("wrong game"))

    bus.publish("g1")
    assert len(received) == 1
    assert received[0]["type"] == "update"
    assert received[0]["game_id"] == "g1"
    assert isinstance(received[0]["at"], int)

    assert bus.subscriber_count("g1") == 1
    unsubscribe()
    unsubscribe()
    assert bus.subscriber_count("g1") == 0
    bus.publish("g1")
    assert len(received) == 1


def test_failing_handler_does_not_stop_others():
    """An exception in one handler still lets the rest run."""
    bus = InProcessNotificationBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe("g1", broken)
    bus.subscribe("g1", received.append)
    bus.publish("g1")
    assert len(received) == 1


def test_format_sse():
    """Named events carry an event line; data is one JSON line."""
    text = format_sse({"type": "update", "game_id": "g1"}, event="update")
    assert text.startswith("event: update\n")
    assert text.endswith("\n\n")
    data_line = text.splitlines()[1]
    assert json.loads(data_line[len("data: "):]) == {"type": "update", "game_id": "g1"}

    assert format_sse({"a": 1}) == 'data: {"a": 1}\n\n'


def test_event_stream_hello_update_and_ping():
    """The stream greets, forwards updates, pings when quiet and unsubscribes on close."""
    bus = InProcessNotificationBus()

    async def connected():
        return False

    async def run():
        stream = game_event_stream("g1", connected, bus=bus, keepalive=0.05)
        hello = await stream.__anext__()
        assert hello.startswith("event: hello\n")
        assert bus.subscriber_count("g1") == 1

        bus.publish("g1")
        update = await stream.__anext__()
        assert update.startswith("event: update\n")
        assert '"game_id": "g1"' in update

        ping = await stream.__anext__()
        assert ping.startswith(": ping ")

        await stream.aclose()
        assert bus.subscriber_count("g1") == 0

    asyncio.run(run())


def test_event_stream_stops_on_disconnect():
    """A disconnected client ends the stream after the greeting."""
    bus = InProcessNotificationBus()

    async def disconnected():
        return True

    async def run():
        chunks = [chunk async for chunk in game_event_stream("g1", disconnected, bus=bus, keepalive=1)]
        assert len(chunks) == 1
        assert chunks[0].startswith("event: hello\n")
        assert bus.subscriber_count("g1") == 0

    asyncio.run(run())
