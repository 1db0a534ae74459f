"""Typed errors raised by the realtime synthesis and audio container code.

Every error carries a stable ``code`` that command-line front ends map to
their own exit status and JSON error body. Nothing in this package prints.
"""

from __future__ import annotations

from typing import Optional


class RawgenError(RuntimeError):
    """Base error for the package."""

    code = "internal_error"


class SessionError(RawgenError):
    """Base error for realtime synthesis session failures."""

    code = "session_error"

    def __init__(self, message: str, *, last_event_type: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.last_event_type = last_event_type


class RealtimeConnectionError(SessionError):
    """Raised when the channel cannot be established or drops mid-handshake."""

    code = "connection_error"


class HandshakeTimeoutError(SessionError):
    """Raised when the server does not acknowledge the session configuration."""

    code = "handshake_timeout"

    def __init__(
        self,
        message: str,
        *,
        timeout: float,
        last_event_type: Optional[str] = None,
    ):
        super().__init__(message, last_event_type=last_event_type)
        self.timeout = timeout


class ServerReportedError(SessionError):
    """Raised when the server sends a terminal error envelope."""

    code = "server_error"


class ChunkDecodeError(SessionError):
    """Raised when an audio fragment's transport encoding is malformed."""

    code = "decode_error"


class OutputWriteError(SessionError):
    """Raised when decoded audio cannot be written to the output sink."""

    code = "output_write_error"


class SessionStateError(SessionError):
    """Raised when an operation is issued in a state that does not allow it."""

    code = "invalid_session_state"


class SessionCancelledError(SessionError):
    """Reported when the caller closes the session before it terminates."""

    code = "cancelled"


class ChannelClosed(RawgenError):
    """Raised by a duplex channel once the underlying transport is closed."""

    code = "connection_closed"


class ContainerFormatError(RawgenError):
    """Raised when a WAV container cannot be parsed."""

    code = "invalid_container"

    def __init__(self, message: str, *, offset: int):
        super().__init__(f"{message} (at byte {offset})")
        self.message = message
        self.offset = offset


class UnsupportedSampleFormatError(RawgenError):
    """Raised when a bit depth has no matching playback sample format."""

    code = "unsupported_sample_format"

    def __init__(self, bits_per_sample: int):
        super().__init__(f"unsupported bits per sample: {bits_per_sample}")
        self.bits_per_sample = bits_per_sample


class UnsupportedAudioFormatError(RawgenError):
    """Raised when a file extension maps to no known audio format."""

    code = "unsupported_format"

    def __init__(self, extension: str, supported: tuple[str, ...] = ()):
        message = f"unsupported audio format '{extension}'"
        if supported:
            message += f", supported: {', '.join(supported)}"
        super().__init__(message)
        self.extension = extension


class InvalidSynthesisOption(RawgenError):
    """Raised when a synthesis option is incompatible with the target model."""

    code = "invalid_option"

    def __init__(self, option: str, message: str):
        super().__init__(message)
        self.option = option


class MissingApiKeyError(RawgenError):
    """Raised when no provider API key is configured for a network call."""

    code = "missing_api_key"

    def __init__(self, variable: str):
        super().__init__(f"{variable} is not set")
        self.variable = variable


__all__ = [
    "ChannelClosed",
    "ChunkDecodeError",
    "ContainerFormatError",
    "HandshakeTimeoutError",
    "InvalidSynthesisOption",
    "MissingApiKeyError",
    "OutputWriteError",
    "RawgenError",
    "RealtimeConnectionError",
    "ServerReportedError",
    "SessionCancelledError",
    "SessionError",
    "SessionStateError",
    "UnsupportedAudioFormatError",
    "UnsupportedSampleFormatError",
]
