from __future__ import annotations

import asyncio
import base64

from rtms.connection import ChannelState
from rtms.signature import generate_signature
from rtms_fakes import (
    CLIENT_ID,
    CLIENT_SECRET,
    MEDIA_URL,
    SIGNALING_URL,
    FakeOpener,
    ManualClock,
    RecordingSink,
    bring_up,
    handshake_ok,
    make_coordinator,
    settle,
    teardown,
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_media_handshake_is_signed_and_requests_all_media():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)

        conn = coordinator.start("sess-1", "stream-1", SIGNALING_URL)
        await settle()
        opener.sockets[0].feed(handshake_ok())
        await settle()

        media = opener.sockets_for(MEDIA_URL)[0]
        handshake = media.sent[0]
        assert handshake["msg_type"] == 3
        assert handshake["signature"] == generate_signature(CLIENT_ID, CLIENT_SECRET, "sess-1", "stream-1")
        assert handshake["media_type"] == 32
        assert handshake["media_params"]["audio"]["sample_rate"] == 1
        assert conn.media.state is ChannelState.AUTHENTICATED
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_handshake_success_requests_stream_start_on_signaling():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)

        conn, signaling, media = await bring_up(coordinator, opener)

        assert conn.media.state is ChannelState.STREAMING
        assert signaling.sent[-1] == {"msg_type": 7, "rtms_stream_id": "stream-1"}
        assert all(msg["msg_type"] != 7 for msg in media.sent)
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_handshake_failure_does_not_stream():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)

        conn = coordinator.start("sess-1", "stream-1", SIGNALING_URL)
        await settle()
        signaling = opener.sockets[0]
        signaling.feed(handshake_ok())
        await settle()
        opener.sockets_for(MEDIA_URL)[0].feed({"msg_type": 4, "status_code": 1})
        await settle()

        assert conn.media.state is ChannelState.AUTHENTICATED
        assert all(msg["msg_type"] != 7 for msg in signaling.sent)
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_keep_alive_is_echoed_on_media_socket():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)

        conn, signaling, media = await bring_up(coordinator, opener)
        signaling_sent = list(signaling.sent)

        media.feed({"msg_type": 12, "timestamp": 99})
        await settle()

        assert media.sent[-1] == {"msg_type": 13, "timestamp": 99}
        assert signaling.sent == signaling_sent
        assert conn.media.state is ChannelState.STREAMING
        assert conn.media.last_keep_alive is not None
        await teardown(coordinator)

    asyncio.run(scenario())


def test_binary_payloads_are_base64_decoded_for_sink():
    async def scenario():
        opener, clock, sink = FakeOpener(), ManualClock(), RecordingSink()
        coordinator = make_coordinator(opener, clock, sink)
        _conn, _signaling, media = await bring_up(coordinator, opener)

        media.feed({"msg_type": 14, "content": {"user_id": 1, "user_name": "Ada", "data": _b64(b"\x01\x00\x02\x00")}})
        media.feed(
            {
                "msg_type": 15,
                "content": {"user_id": 2, "user_name": "Bob", "data": _b64(b"h264"), "timestamp": 1234},
            }
        )
        media.feed({"msg_type": 16, "content": {"user_id": 3, "user_name": "Cy", "data": _b64(b"jpeg")}})
        await settle()

        assert sink.named("on_audio") == [(1, "Ada", b"\x01\x00\x02\x00", None)]
        assert sink.named("on_video") == [(2, "Bob", b"h264", 1234)]
        assert sink.named("on_screen_share") == [(3, "Cy", b"jpeg", None)]
        await teardown(coordinator)

    asyncio.run(scenario())


def test_text_payloads_are_passed_through():
    async def scenario():
        opener, clock, sink = FakeOpener(), ManualClock(), RecordingSink()
        coordinator = make_coordinator(opener, clock, sink)
        _conn, _signaling, media = await bring_up(coordinator, opener)

        media.feed({"msg_type": 17, "content": {"user_id": 1, "user_name": "Ada", "data": "Hallo zusammen"}})
        media.feed({"msg_type": 18, "content": {"user_id": 2, "user_name": "Bob", "data": "see chat"}})
        await settle()

        assert sink.named("on_transcript") == [(1, "Ada", "Hallo zusammen", None)]
        assert sink.named("on_chat") == [(2, "Bob", "see chat", None)]
        await teardown(coordinator)

    asyncio.run(scenario())


def test_frames_without_payload_or_with_bad_base64_are_skipped():
    async def scenario():
        opener, clock, sink = FakeOpener(), ManualClock(), RecordingSink()
        coordinator = make_coordinator(opener, clock, sink)
        conn, _signaling, media = await bring_up(coordinator, opener)

        media.feed({"msg_type": 14})
        media.feed({"msg_type": 14, "content": {"user_name": "Ada"}})
        media.feed({"msg_type": 14, "content": {"data": ""}})
        media.feed({"msg_type": 15, "content": {"data": "!!not-base64!!"}})
        media.feed("garbage")
        await settle()

        assert sink.calls == []
        assert conn.media.state is ChannelState.STREAMING
        assert not conn.media.task.done()
        await teardown(coordinator)

    asyncio.run(scenario())


def test_failing_sink_does_not_stop_the_stream():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        sink = RecordingSink(fail_on={"on_audio"})
        coordinator = make_coordinator(opener, clock, sink)
        conn, _signaling, media = await bring_up(coordinator, opener)

        media.feed({"msg_type": 14, "content": {"data": _b64(b"\x00\x00")}})
        media.feed({"msg_type": 17, "content": {"data": "still here"}})
        await settle()

        assert len(sink.named("on_audio")) == 1
        assert sink.named("on_transcript")[0][2] == "still here"
        assert conn.media.state is ChannelState.STREAMING
        await teardown(coordinator)

    asyncio.run(scenario())


def test_async_sink_methods_are_awaited():
    class AsyncSink(RecordingSink):
        async def on_chat(self, user_id, user_name, data, timestamp):
            await asyncio.sleep(0)
            self._record("on_chat", user_id, user_name, data, timestamp)

    async def scenario():
        opener, clock, sink = FakeOpener(), ManualClock(), AsyncSink()
        coordinator = make_coordinator(opener, clock, sink)
        _conn, _signaling, media = await bring_up(coordinator, opener)

        media.feed({"msg_type": 18, "content": {"user_name": "Ada", "data": "hi"}})
        await settle()

        assert sink.named("on_chat") == [(None, "Ada", "hi", None)]
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_close_with_healthy_signaling_reopens_media_only():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)
        conn, signaling, media = await bring_up(coordinator, opener)

        media.drop()
        await settle()

        assert conn.media.state is ChannelState.CLOSED
        assert conn.media.retry_pending
        assert conn.signaling.state is ChannelState.READY
        assert opener.urls == [SIGNALING_URL, MEDIA_URL]

        clock.advance(3)
        await settle()

        assert opener.urls == [SIGNALING_URL, MEDIA_URL, MEDIA_URL]
        assert signaling.close_calls == 0
        assert conn.signaling.socket is signaling
        assert conn.media.state is ChannelState.AUTHENTICATED

        # The new media socket acknowledges on the current signaling socket.
        opener.sockets_for(MEDIA_URL)[-1].feed({"msg_type": 4, "status_code": 0})
        await settle()
        assert conn.media.state is ChannelState.STREAMING
        assert [m for m in signaling.sent if m["msg_type"] == 7] == [
            {"msg_type": 7, "rtms_stream_id": "stream-1"},
            {"msg_type": 7, "rtms_stream_id": "stream-1"},
        ]
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_close_with_unready_signaling_restarts_signaling():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)
        conn, signaling, media = await bring_up(coordinator, opener)

        # Signaling is connected but no longer ready.
        conn.signaling.state = ChannelState.AUTHENTICATED

        media.drop()
        await settle()

        assert opener.urls == [SIGNALING_URL, MEDIA_URL, SIGNALING_URL]
        assert signaling.close_calls >= 1
        new_signaling = opener.sockets_for(SIGNALING_URL)[-1]
        assert new_signaling is not signaling
        assert conn.signaling.socket is new_signaling
        assert coordinator.get("sess-1") is conn
        assert len(coordinator.registry) == 1

        # The superseded socket's close does not schedule another restart.
        assert not conn.signaling.retry_pending
        clock.advance(3)
        await settle()
        assert opener.urls.count(SIGNALING_URL) == 2

        new_signaling.feed(handshake_ok())
        await settle()
        assert opener.urls[-1] == MEDIA_URL
        await teardown(coordinator)

    asyncio.run(scenario())


def test_media_close_while_signaling_reconnects_does_not_double_restart():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        coordinator = make_coordinator(opener, clock)
        conn, _signaling, media = await bring_up(coordinator, opener)

        conn.signaling.state = ChannelState.CONNECTING

        media.drop()
        await settle()

        assert opener.urls == [SIGNALING_URL, MEDIA_URL]
        assert not conn.media.retry_pending
        await teardown(coordinator)

    asyncio.run(scenario())


def test_refused_media_open_retries_media_only():
    async def scenario():
        opener, clock = FakeOpener(), ManualClock()
        opener.refuse.add(MEDIA_URL)
        coordinator = make_coordinator(opener, clock)

        conn = coordinator.start("sess-1", "stream-1", SIGNALING_URL)
        await settle()
        signaling = opener.sockets[0]
        signaling.feed(handshake_ok())
        await settle()

        assert opener.urls == [SIGNALING_URL, MEDIA_URL]
        assert conn.media.state is ChannelState.CLOSED
        assert conn.media.retry_pending
        assert conn.signaling.state is ChannelState.READY

        opener.refuse.clear()
        clock.advance(3)
        await settle()

        assert opener.urls == [SIGNALING_URL, MEDIA_URL, MEDIA_URL]
        assert conn.media.state is ChannelState.AUTHENTICATED
        assert conn.signaling.socket is signaling
        assert signaling.close_calls == 0
        await teardown(coordinator)

    asyncio.run(scenario())
