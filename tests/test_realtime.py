import asyncio

import pytest

from exam_client.api.realtime import (
    CONNECT_ERROR,
    EXAM_COMPLETED,
    PAIRING_FAILED,
    START_EXAM,
    RealtimeChannel,
)
from exam_client.errors import TransportError


async def test_connect_forwards_cookies_and_namespace(channel, fake_socket):
    await channel.connect({"session": "abc", "lang": "en"})
    assert channel.connected
    call = fake_socket.connect_calls[0]
    assert call["url"] == "http://testserver"
    assert call["namespaces"] == ["/quiz"]
    assert call["path"] == "socket.io"
    assert call["headers"]["Cookie"] == "session=abc; lang=en"


async def test_connect_failure_sets_error(channel, fake_socket):
    seen = []
    channel.on(CONNECT_ERROR, seen.append)
    fake_socket.fail_connect = "refused"
    with pytest.raises(TransportError):
        await channel.connect()
    assert not channel.connected
    assert "refused" in channel.connect_error
    assert seen == ["refused"]


async def test_connect_error_reported_by_socketio_is_not_repeated(channel, fake_socket):
    seen = []
    channel.on(CONNECT_ERROR, seen.append)
    fake_socket.fail_connect = "refused"
    fake_socket.report_connect_error = True
    with pytest.raises(TransportError) as exc:
        await channel.connect()
    assert seen == [{"message": "refused"}]
    assert exc.value.message == "Connection error: refused"


async def test_emit_requires_connection(channel, fake_socket):
    assert await channel.emit("ping", {"x": 1}) is False
    await channel.connect()
    assert await channel.emit("ping", {"x": 1}) is True
    assert fake_socket.emitted == [("ping", {"x": 1}, "/quiz")]


async def test_several_listeners_and_dispose(connected_channel, fake_socket):
    seen = []
    first = connected_channel.on(START_EXAM, lambda p: seen.append(("a", p)))

    async def second_handler(payload):
        seen.append(("b", payload))

    second = connected_channel.on(START_EXAM, second_handler)
    await fake_socket.fire(START_EXAM, {"attemptId": 1})
    first.close()
    await fake_socket.fire(START_EXAM, {"attemptId": 2})
    with second:
        pass
    await fake_socket.fire(START_EXAM, {"attemptId": 3})

    assert seen == [("a", {"attemptId": 1}), ("b", {"attemptId": 1}), ("b", {"attemptId": 2})]
    assert connected_channel.listener_count(START_EXAM) == 0


async def test_failing_listener_does_not_stop_others(connected_channel, fake_socket):
    seen = []

    def broken(payload):
        raise RuntimeError("boom")

    connected_channel.on(PAIRING_FAILED, broken)
    connected_channel.on(PAIRING_FAILED, seen.append)
    await fake_socket.fire(PAIRING_FAILED, {"message": "bad code"})
    assert seen == [{"message": "bad code"}]


async def test_attempt_scope_filters_other_attempts(connected_channel, fake_socket):
    seen = []
    connected_channel.for_attempt(42).on(EXAM_COMPLETED, seen.append)
    await fake_socket.fire(EXAM_COMPLETED, {"attemptId": 41, "score": 1})
    await fake_socket.fire(EXAM_COMPLETED, {"attemptId": "42", "score": 2})
    await fake_socket.fire(EXAM_COMPLETED, {"score": 3})
    assert [p["score"] for p in seen] == [2, 3]


async def test_attempt_scope_emit_tags_attempt(connected_channel, fake_socket):
    await connected_channel.for_attempt(42).emit("answer_update", {"slotOrder": 1})
    assert fake_socket.emitted[-1] == ("answer_update", {"slotOrder": 1, "attemptId": 42}, "/quiz")


async def test_event_stream_detaches_on_exit(connected_channel, fake_socket):
    async def fire_later():
        await asyncio.sleep(0)
        await fake_socket.fire(PAIRING_FAILED, {"message": "expired"})

    task = asyncio.create_task(fire_later())
    async with connected_channel.events(START_EXAM, PAIRING_FAILED) as stream:
        async for event, payload in stream:
            assert event == PAIRING_FAILED
            assert payload["message"] == "expired"
            break
    await task
    assert connected_channel.listener_count(PAIRING_FAILED) == 0
    assert connected_channel.listener_count(START_EXAM) == 0


async def test_server_disconnect_reports_relogin(connected_channel, fake_socket):
    await fake_socket.fire("disconnect", "server disconnect")
    assert not connected_channel.connected
    assert "log in again" in connected_channel.connect_error


async def test_client_disconnect_leaves_no_error(connected_channel):
    await connected_channel.disconnect()
    assert not connected_channel.connected
    assert connected_channel.connect_error is None


def test_default_client_uses_reconnection_settings(settings):
    channel = RealtimeChannel(settings)
    assert channel.namespace == "/quiz"
    assert channel._sio.reconnection_attempts == 5
