"""Stateful realtime synthesis session over a duplex channel.

A session moves through::

    IDLE -> CONNECTING -> CONFIGURING -> AWAITING_CONFIG_ACK -> STREAMING
         -> AWAITING_FINISH_ACK -> COMPLETED | FAILED | CANCELLED

Transitions only move forward. ``receive_loop`` is the only reader of the
channel once the handshake is done; text is sent by a single writer through
``stream_text``/``commit``/``finish``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from ..errors import (
    ChannelClosed,
    ChunkDecodeError,
    HandshakeTimeoutError,
    OutputWriteError,
    RealtimeConnectionError,
    ServerReportedError,
    SessionCancelledError,
    SessionError,
    SessionStateError,
)
from ..schemas.realtime import (
    InputAppendMessage,
    InputCommitMessage,
    OutboundMessage,
    SessionConfig,
    SessionConfigureMessage,
    SessionFinishMessage,
)
from . import codec
from .assembler import AudioSink, ChunkAssembler, TransportEncoding
from .channel import Connector, DuplexChannel

logger = logging.getLogger(__name__)
session_logger = logging.getLogger("rawgen.sessions")


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONFIGURING = "configuring"
    AWAITING_CONFIG_ACK = "awaiting_config_ack"
    STREAMING = "streaming"
    AWAITING_FINISH_ACK = "awaiting_finish_ack"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
)

_STATE_ORDER = {
    SessionState.IDLE: 0,
    SessionState.CONNECTING: 1,
    SessionState.CONFIGURING: 2,
    SessionState.AWAITING_CONFIG_ACK: 3,
    SessionState.STREAMING: 4,
    SessionState.AWAITING_FINISH_ACK: 5,
    SessionState.COMPLETED: 6,
    SessionState.FAILED: 6,
    SessionState.CANCELLED: 6,
}


class SessionOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class SynthesisSession:
    """Per-session state. Owned exclusively by one ``SessionClient`` call chain."""

    config: SessionConfig
    assembler: ChunkAssembler
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    channel: Optional[DuplexChannel] = None
    state: SessionState = SessionState.IDLE
    outcome: Optional[SessionOutcome] = None
    error: Optional[SessionError] = None
    last_event_type: Optional[str] = None
    committed: bool = False
    cancelled: bool = False
    terminal_received: bool = False
    _receiving: bool = field(default=False, repr=False)
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def total_bytes(self) -> int:
        return self.assembler.total_bytes

    def transition(self, new_state: SessionState) -> None:
        if self.state.is_terminal or _STATE_ORDER[new_state] < _STATE_ORDER[self.state]:
            raise SessionStateError(
                f"cannot move from {self.state.value} to {new_state.value}",
                last_event_type=self.last_event_type,
            )
        session_logger.debug(f"[{self.session_id}] {self.state.value} -> {new_state.value}")
        self.state = new_state


Callback = Optional[Callable[..., Any]]


async def _invoke(callback: Callback, *args: Any) -> None:
    if callback is None:
        return
    if inspect.iscoroutinefunction(callback):
        await callback(*args)
    else:
        callback(*args)


class SessionClient:
    """Drives the configure / stream / finish protocol for one session at a time."""

    def __init__(
        self,
        connector: Connector,
        *,
        handshake_timeout: float = 10.0,
        text_chunk_chars: int = 2000,
        require_terminal_event: bool = False,
        transport_encoding: TransportEncoding = "base64",
    ):
        if handshake_timeout <= 0:
            raise ValueError("handshake_timeout must be positive")
        if text_chunk_chars < 1:
            raise ValueError("text_chunk_chars must be at least 1")
        self._connector = connector
        self.handshake_timeout = handshake_timeout
        self.text_chunk_chars = text_chunk_chars
        self.require_terminal_event = require_terminal_event
        self.transport_encoding = transport_encoding

    @classmethod
    def for_channel(cls, channel: DuplexChannel, **kwargs: Any) -> "SessionClient":
        """Build a client around an already-established channel."""

        async def _existing() -> DuplexChannel:
            return channel

        return cls(_existing, **kwargs)

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------
    async def open(
        self,
        config: SessionConfig,
        sink: Optional[AudioSink] = None,
    ) -> SynthesisSession:
        """Connect, send the configuration and wait for ``session.updated``."""

        session = SynthesisSession(
            config=config,
            assembler=ChunkAssembler(sink, encoding=self.transport_encoding),
        )
        session.transition(SessionState.CONNECTING)
        try:
            session.channel = await self._connector()
        except RealtimeConnectionError as exc:
            self._fail(session, exc)
            raise
        except OSError as exc:
            error = RealtimeConnectionError(f"cannot open channel: {exc}")
            self._fail(session, error)
            raise error from exc

        session.transition(SessionState.CONFIGURING)
        try:
            await self._send(session, SessionConfigureMessage(session=config))
        except SessionError:
            await self._close_channel(session)
            raise

        session.transition(SessionState.AWAITING_CONFIG_ACK)
        try:
            await asyncio.wait_for(self._await_ready(session), timeout=self.handshake_timeout)
        except asyncio.TimeoutError:
            error = HandshakeTimeoutError(
                f"no session acknowledgment within {self.handshake_timeout:g}s",
                timeout=self.handshake_timeout,
                last_event_type=session.last_event_type,
            )
            self._fail(session, error)
            await self._close_channel(session)
            raise error from None
        except SessionError as exc:
            self._fail(session, exc)
            await self._close_channel(session)
            raise

        session.transition(SessionState.STREAMING)
        logger.info(
            f"Realtime session {session.session_id} ready "
            f"(voice={config.voice}, format={config.response_format}, rate={config.sample_rate})"
        )
        return session

    async def _await_ready(self, session: SynthesisSession) -> None:
        while True:
            try:
                frame = await session.channel.recv()
            except ChannelClosed as exc:
                raise RealtimeConnectionError(
                    f"connection closed during handshake: {exc}",
                    last_event_type=session.last_event_type,
                ) from exc

            try:
                envelope = codec.decode(frame)
            except codec.DecodeError as exc:
                logger.debug(f"Dropping frame during handshake: {exc}")
                continue

            session.last_event_type = envelope.type.value
            if envelope.type is codec.InboundType.READY:
                return
            if envelope.type is codec.InboundType.ERROR:
                raise ServerReportedError(envelope.message, last_event_type=envelope.type.value)
            if envelope.type is codec.InboundType.COMPLETE:
                raise RealtimeConnectionError(
                    "session finished before it was configured",
                    last_event_type=envelope.type.value,
                )
            logger.debug(f"Ignoring {envelope.type.value} before session is ready")

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    async def _send(self, session: SynthesisSession, message: OutboundMessage) -> None:
        if session.cancelled:
            raise SessionCancelledError(
                "session was cancelled", last_event_type=session.last_event_type
            )
        if session.state.is_terminal or session.channel is None:
            raise SessionStateError(
                f"cannot send {message.type} in state {session.state.value}",
                last_event_type=session.last_event_type,
            )
        frame = codec.encode(message)
        async with session._send_lock:
            try:
                await session.channel.send(frame)
            except ChannelClosed as exc:
                if session.cancelled:
                    raise SessionCancelledError(
                        "session was cancelled", last_event_type=session.last_event_type
                    ) from exc
                error = RealtimeConnectionError(
                    f"cannot send {message.type}: {exc}",
                    last_event_type=session.last_event_type,
                )
                if not session._receiving:
                    self._fail(session, error)
                raise error from exc

    def _require_streaming(self, session: SynthesisSession, operation: str) -> None:
        if session.state is not SessionState.STREAMING:
            raise SessionStateError(
                f"cannot {operation} in state {session.state.value}",
                last_event_type=session.last_event_type,
            )

    def _split_text(self, text: str) -> list[str]:
        size = self.text_chunk_chars
        return [text[start:start + size] for start in range(0, len(text), size)]

    async def stream_text(self, session: SynthesisSession, text: str) -> None:
        """Send ``text`` as one or more append envelopes. No acknowledgment is awaited."""

        if not text:
            raise ValueError("text must not be empty")
        self._require_streaming(session, "stream text")
        if session.committed:
            raise SessionStateError(
                "cannot stream text after commit", last_event_type=session.last_event_type
            )
        for fragment in self._split_text(text):
            await self._send(session, InputAppendMessage(text=fragment))

    async def commit(self, session: SynthesisSession) -> None:
        """Signal that no further text will be appended."""

        self._require_streaming(session, "commit")
        if session.committed:
            return
        await self._send(session, InputCommitMessage())
        session.committed = True

    async def finish(self, session: SynthesisSession) -> None:
        """Request a graceful end of the session."""

        self._require_streaming(session, "finish")
        await self._send(session, SessionFinishMessage())
        session.transition(SessionState.AWAITING_FINISH_ACK)

    async def cancel(self, session: SynthesisSession) -> None:
        """Abort the session by closing its channel.

        A running ``receive_loop`` reports ``SessionCancelledError`` to its
        ``on_error`` callback; otherwise the session is settled here.
        """

        if session.state.is_terminal:
            return
        session.cancelled = True
        await self._close_channel(session)
        if not session._receiving:
            self._settle_cancelled(session)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    async def receive_loop(
        self,
        session: SynthesisSession,
        on_chunk: Callback = None,
        on_complete: Callback = None,
        on_error: Callback = None,
    ) -> SessionOutcome:
        """Read until a terminal envelope or channel closure.

        ``on_chunk(bytes)`` fires for each decoded audio fragment in arrival
        order. Exactly one of ``on_complete(total_bytes)`` or
        ``on_error(SessionError)`` fires, and nothing fires after it.
        """

        if session.state not in (SessionState.STREAMING, SessionState.AWAITING_FINISH_ACK):
            raise SessionStateError(
                f"cannot receive in state {session.state.value}",
                last_event_type=session.last_event_type,
            )
        if session._receiving:
            raise SessionStateError(
                "a receive loop is already running", last_event_type=session.last_event_type
            )

        session._receiving = True
        try:
            while True:
                try:
                    frame = await session.channel.recv()
                except ChannelClosed as exc:
                    return await self._on_channel_closed(session, exc, on_complete, on_error)

                try:
                    envelope = codec.decode(frame)
                except codec.DecodeError as exc:
                    logger.debug(f"[{session.session_id}] Dropping frame: {exc}")
                    continue

                session.last_event_type = envelope.type.value

                if envelope.type is codec.InboundType.AUDIO_DELTA:
                    try:
                        chunk = session.assembler.append(envelope.delta)
                    except (ChunkDecodeError, OutputWriteError) as exc:
                        exc.last_event_type = envelope.type.value
                        return await self._abort(session, exc, on_error)
                    await _invoke(on_chunk, chunk)
                elif envelope.type is codec.InboundType.COMPLETE:
                    session.terminal_received = True
                    return await self._complete(session, on_complete, on_error)
                elif envelope.type is codec.InboundType.ERROR:
                    error = ServerReportedError(
                        envelope.message, last_event_type=envelope.type.value
                    )
                    return await self._abort(session, error, on_error)
                else:
                    logger.debug(f"[{session.session_id}] Ignoring repeated {envelope.type.value}")
        except asyncio.CancelledError:
            if not session.state.is_terminal:
                session.cancelled = True
                self._settle_cancelled(session)
                await _invoke(on_error, session.error)
                await self._close_channel(session)
            raise
        finally:
            session._receiving = False

    async def _on_channel_closed(
        self,
        session: SynthesisSession,
        exc: ChannelClosed,
        on_complete: Callback,
        on_error: Callback,
    ) -> SessionOutcome:
        if session.cancelled:
            self._settle_cancelled(session)
            await _invoke(on_error, session.error)
            return SessionOutcome.CANCELLED

        if self.require_terminal_event:
            error = RealtimeConnectionError(
                f"channel closed before the session finished: {exc}",
                last_event_type=session.last_event_type,
            )
            return await self._abort(session, error, on_error)

        logger.warning(
            f"[{session.session_id}] Channel closed without a terminal event; "
            f"treating {session.total_bytes} bytes as complete"
        )
        return await self._complete(session, on_complete, on_error)

    async def _complete(
        self,
        session: SynthesisSession,
        on_complete: Callback,
        on_error: Callback,
    ) -> SessionOutcome:
        try:
            total = session.assembler.finalize()
        except OutputWriteError as exc:
            return await self._abort(session, exc, on_error)
        session.transition(SessionState.COMPLETED)
        session.outcome = SessionOutcome.COMPLETED
        await self._close_channel(session)
        logger.info(f"Realtime session {session.session_id} completed ({total} bytes)")
        await _invoke(on_complete, total)
        return SessionOutcome.COMPLETED

    async def _abort(
        self,
        session: SynthesisSession,
        error: SessionError,
        on_error: Callback,
    ) -> SessionOutcome:
        self._fail(session, error)
        await self._close_channel(session)
        await _invoke(on_error, error)
        return SessionOutcome.FAILED

    def _fail(self, session: SynthesisSession, error: SessionError) -> None:
        session.assembler.release()
        if session.state.is_terminal:
            return
        session.transition(SessionState.FAILED)
        session.outcome = SessionOutcome.FAILED
        session.error = error
        logger.error(f"Realtime session {session.session_id} failed: [{error.code}] {error}")

    def _settle_cancelled(self, session: SynthesisSession) -> None:
        session.assembler.release()
        if session.state.is_terminal:
            return
        session.transition(SessionState.CANCELLED)
        session.outcome = SessionOutcome.CANCELLED
        session.error = SessionCancelledError(
            "session was cancelled", last_event_type=session.last_event_type
        )
        logger.info(f"Realtime session {session.session_id} cancelled")

    async def _close_channel(self, session: SynthesisSession) -> None:
        if session.channel is None:
            return
        try:
            await session.channel.close()
        except (ChannelClosed, OSError) as exc:
            logger.debug(f"[{session.session_id}] Ignoring error while closing channel: {exc}")


__all__ = [
    "SessionClient",
    "SessionOutcome",
    "SessionState",
    "SynthesisSession",
]
