"""Tests for the realtime synthesis session state machine."""

import asyncio
import io

import pytest
from fakes import FakeChannel, delta_frame, error_frame, finished_frame, ready_frame

from rawgen.errors import (
    ChunkDecodeError,
    HandshakeTimeoutError,
    RealtimeConnectionError,
    ServerReportedError,
    SessionCancelledError,
    SessionStateError,
)
from rawgen.realtime.assembler import ChunkAssembler
from rawgen.realtime.session import SessionClient, SessionOutcome, SessionState, SynthesisSession
from rawgen.schemas.realtime import SessionConfig


class Recorder:
    def __init__(self):
        self.chunks: list[bytes] = []
        self.completed: list[int] = []
        self.errors: list[Exception] = []

    def on_chunk(self, chunk: bytes) -> None:
        self.chunks.append(chunk)

    def on_complete(self, total: int) -> None:
        self.completed.append(total)

    def on_error(self, error: Exception) -> None:
        self.errors.append(error)


def _client(channel: FakeChannel, **kwargs) -> SessionClient:
    kwargs.setdefault("handshake_timeout", 1.0)
    return SessionClient.for_channel(channel, **kwargs)


async def _open(channel: FakeChannel, sink=None, **kwargs):
    channel.feed(ready_frame())
    client = _client(channel, **kwargs)
    session = await client.open(SessionConfig(), sink)
    return client, session


async def _run_loop(client, session, recorder):
    return await client.receive_loop(
        session,
        on_chunk=recorder.on_chunk,
        on_complete=recorder.on_complete,
        on_error=recorder.on_error,
    )


class TestHandshake:
    @pytest.mark.asyncio
    async def test_open_sends_configure_and_waits_for_ready(self, channel):
        client, session = await _open(channel)

        assert session.state is SessionState.STREAMING
        assert channel.sent_types == ["session.update"]
        assert channel.sent_messages[0]["session"]["voice"] == "Cherry"
        assert session.last_event_type == "session.updated"

    @pytest.mark.asyncio
    async def test_open_skips_unknown_frames_before_ready(self, channel):
        channel.feed("garbage", '{"type": "ping"}', delta_frame(b"\x00\x01"))
        client, session = await _open(channel)
        assert session.state is SessionState.STREAMING
        assert session.total_bytes == 0

    @pytest.mark.asyncio
    async def test_handshake_timeout(self, channel):
        client = _client(channel, handshake_timeout=0.05)
        with pytest.raises(HandshakeTimeoutError) as excinfo:
            await client.open(SessionConfig())

        assert excinfo.value.timeout == 0.05
        assert excinfo.value.code == "handshake_timeout"
        assert channel.closed

    @pytest.mark.asyncio
    async def test_error_during_handshake(self, channel):
        channel.feed(error_frame("invalid api key"))
        client = _client(channel)

        with pytest.raises(ServerReportedError, match="invalid api key") as excinfo:
            await client.open(SessionConfig())
        assert excinfo.value.last_event_type == "error"
        assert channel.closed

    @pytest.mark.asyncio
    async def test_channel_closed_during_handshake(self, channel):
        channel.feed_close()
        client = _client(channel)

        with pytest.raises(RealtimeConnectionError, match="closed during handshake"):
            await client.open(SessionConfig())

    @pytest.mark.asyncio
    async def test_finished_before_ready(self, channel):
        channel.feed(finished_frame())
        with pytest.raises(RealtimeConnectionError):
            await _client(channel).open(SessionConfig())

    @pytest.mark.asyncio
    async def test_connector_failure(self):
        async def connector():
            raise OSError("connection refused")

        client = SessionClient(connector)
        with pytest.raises(RealtimeConnectionError, match="connection refused"):
            await client.open(SessionConfig())

    def test_rejects_non_positive_timeout(self, channel):
        with pytest.raises(ValueError):
            SessionClient.for_channel(channel, handshake_timeout=0)


class TestOutbound:
    @pytest.mark.asyncio
    async def test_stream_commit_finish(self, channel):
        client, session = await _open(channel)

        await client.stream_text(session, "Hello world")
        await client.commit(session)
        await client.finish(session)

        assert channel.sent_types == [
            "session.update",
            "input_text_buffer.append",
            "input_text_buffer.commit",
            "session.finish",
        ]
        assert channel.sent_messages[1]["text"] == "Hello world"
        assert session.state is SessionState.AWAITING_FINISH_ACK

    @pytest.mark.asyncio
    async def test_long_text_is_split_in_order(self, channel):
        client, session = await _open(channel, text_chunk_chars=4)

        await client.stream_text(session, "abcdefghij")

        appended = [m["text"] for m in channel.sent_messages if m["type"] == "input_text_buffer.append"]
        assert appended == ["abcd", "efgh", "ij"]

    @pytest.mark.asyncio
    async def test_no_text_before_ready(self, channel):
        client = _client(channel)
        session = SynthesisSession(config=SessionConfig(), assembler=ChunkAssembler())

        with pytest.raises(SessionStateError):
            await client.stream_text(session, "too early")
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_no_text_after_commit(self, channel):
        client, session = await _open(channel)
        await client.stream_text(session, "one")
        await client.commit(session)

        with pytest.raises(SessionStateError):
            await client.stream_text(session, "two")

    @pytest.mark.asyncio
    async def test_no_text_after_finish(self, channel):
        client, session = await _open(channel)
        await client.finish(session)

        with pytest.raises(SessionStateError):
            await client.stream_text(session, "late")
        with pytest.raises(SessionStateError):
            await client.finish(session)

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self, channel):
        client, session = await _open(channel)
        with pytest.raises(ValueError):
            await client.stream_text(session, "")

    @pytest.mark.asyncio
    async def test_send_on_dropped_channel(self, channel):
        client, session = await _open(channel)
        channel.closed = True

        with pytest.raises(RealtimeConnectionError):
            await client.stream_text(session, "hello")
        assert session.state is SessionState.FAILED


class TestReceiveLoop:
    @pytest.mark.asyncio
    async def test_chunks_arrive_in_order(self, channel):
        sink = io.BytesIO()
        client, session = await _open(channel, sink)
        channel.feed(delta_frame(b"AAAA"), delta_frame(b"BB"), finished_frame())
        recorder = Recorder()

        outcome = await _run_loop(client, session, recorder)

        assert outcome is SessionOutcome.COMPLETED
        assert sink.getvalue() == b"AAAABB"
        assert recorder.chunks == [b"AAAA", b"BB"]
        assert recorder.completed == [6]
        assert recorder.errors == []
        assert session.state is SessionState.COMPLETED
        assert session.terminal_received
        assert channel.closed

    @pytest.mark.asyncio
    async def test_undecodable_frames_are_skipped(self, channel):
        sink = io.BytesIO()
        client, session = await _open(channel, sink)
        channel.feed(
            delta_frame(b"A"),
            "{not json",
            '{"type": "response.audio.done"}',
            ready_frame(),
            delta_frame(b"B"),
            finished_frame(),
        )
        recorder = Recorder()

        await _run_loop(client, session, recorder)

        assert sink.getvalue() == b"AB"
        assert recorder.completed == [2]

    @pytest.mark.asyncio
    async def test_server_error_stops_immediately(self, channel):
        sink = io.BytesIO()
        client, session = await _open(channel, sink)
        channel.feed(delta_frame(b"A"), error_frame("synthesis failed"), delta_frame(b"B"), finished_frame())
        recorder = Recorder()

        outcome = await _run_loop(client, session, recorder)

        assert outcome is SessionOutcome.FAILED
        assert recorder.chunks == [b"A"]
        assert recorder.completed == []
        assert len(recorder.errors) == 1
        error = recorder.errors[0]
        assert isinstance(error, ServerReportedError)
        assert str(error) == "synthesis failed"
        assert error.last_event_type == "error"
        assert session.error is error
        assert session.state is SessionState.FAILED
        assert sink.getvalue() == b"A"

    @pytest.mark.asyncio
    async def test_malformed_chunk_aborts(self, channel):
        client, session = await _open(channel, io.BytesIO())
        channel.feed(delta_frame(b"A"), '{"type": "response.audio.delta", "delta": "%%%"}', delta_frame(b"B"))
        recorder = Recorder()

        outcome = await _run_loop(client, session, recorder)

        assert outcome is SessionOutcome.FAILED
        assert recorder.chunks == [b"A"]
        assert isinstance(recorder.errors[0], ChunkDecodeError)
        assert recorder.errors[0].last_event_type == "response.audio.delta"
        assert channel.closed

    @pytest.mark.asyncio
    async def test_close_without_terminal_is_best_effort_success(self, channel):
        sink = io.BytesIO()
        client, session = await _open(channel, sink)
        channel.feed(delta_frame(b"xyz"))
        channel.feed_close()
        recorder = Recorder()

        outcome = await _run_loop(client, session, recorder)

        assert outcome is SessionOutcome.COMPLETED
        assert recorder.completed == [3]
        assert not session.terminal_received

    @pytest.mark.asyncio
    async def test_close_without_terminal_strict(self, channel):
        client, session = await _open(channel, require_terminal_event=True)
        channel.feed(delta_frame(b"xyz"))
        channel.feed_close()
        recorder = Recorder()

        outcome = await _run_loop(client, session, recorder)

        assert outcome is SessionOutcome.FAILED
        assert recorder.completed == []
        assert isinstance(recorder.errors[0], RealtimeConnectionError)

    @pytest.mark.asyncio
    async def test_async_callbacks(self, channel):
        client, session = await _open(channel)
        channel.feed(delta_frame(b"12"), finished_frame())
        seen = []

        async def on_chunk(chunk):
            await asyncio.sleep(0)
            seen.append(chunk)

        async def on_complete(total):
            seen.append(total)

        await client.receive_loop(session, on_chunk=on_chunk, on_complete=on_complete)
        assert seen == [b"12", 2]

    @pytest.mark.asyncio
    async def test_concurrent_writer_and_reader(self, channel):
        sink = io.BytesIO()
        client, session = await _open(channel, sink)
        recorder = Recorder()
        receiver = asyncio.create_task(_run_loop(client, session, recorder))

        await client.stream_text(session, "hello")
        await client.commit(session)
        await client.finish(session)
        channel.feed(delta_frame(b"\x01\x02"), delta_frame(b"\x03\x04"), finished_frame())

        assert await receiver is SessionOutcome.COMPLETED
        assert sink.getvalue() == b"\x01\x02\x03\x04"

    @pytest.mark.asyncio
    async def test_only_one_reader(self, channel):
        client, session = await _open(channel)
        receiver = asyncio.create_task(client.receive_loop(session))
        await asyncio.sleep(0)

        with pytest.raises(SessionStateError):
            await client.receive_loop(session)

        channel.feed(finished_frame())
        await receiver

    @pytest.mark.asyncio
    async def test_receive_after_terminal_rejected(self, channel):
        client, session = await _open(channel)
        channel.feed(finished_frame())
        await client.receive_loop(session)

        with pytest.raises(SessionStateError):
            await client.receive_loop(session)
        with pytest.raises(SessionStateError):
            await client.stream_text(session, "again")


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_reports_to_pending_callback(self, channel):
        client, session = await _open(channel, io.BytesIO())
        recorder = Recorder()
        receiver = asyncio.create_task(_run_loop(client, session, recorder))
        channel.feed(delta_frame(b"A"))
        await asyncio.sleep(0.01)

        await client.cancel(session)
        outcome = await receiver

        assert outcome is SessionOutcome.CANCELLED
        assert session.state is SessionState.CANCELLED
        assert recorder.completed == []
        assert len(recorder.errors) == 1
        assert isinstance(recorder.errors[0], SessionCancelledError)

    @pytest.mark.asyncio
    async def test_no_sends_after_cancel(self, channel):
        client, session = await _open(channel)
        await client.cancel(session)

        assert session.outcome is SessionOutcome.CANCELLED
        assert channel.closed
        with pytest.raises(SessionStateError):
            await client.commit(session)
        assert channel.sent_types == ["session.update"]

    @pytest.mark.asyncio
    async def test_task_cancellation_releases_session(self, channel):
        client, session = await _open(channel, io.BytesIO())
        recorder = Recorder()
        receiver = asyncio.create_task(_run_loop(client, session, recorder))
        await asyncio.sleep(0.01)

        receiver.cancel()
        with pytest.raises(asyncio.CancelledError):
            await receiver

        assert session.state is SessionState.CANCELLED
        assert isinstance(recorder.errors[0], SessionCancelledError)
        assert channel.closed
