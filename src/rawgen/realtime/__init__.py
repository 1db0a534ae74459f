"""Realtime (websocket) speech synthesis sessions."""

from .assembler import ChunkAssembler
from .channel import DuplexChannel, WebSocketChannel, realtime_url, websocket_connector
from .codec import DecodeError, Envelope, InboundType, decode, encode
from .session import SessionClient, SessionOutcome, SessionState, SynthesisSession
from .synthesize import SynthesisResult, synthesize_to_file

__all__ = [
    "ChunkAssembler",
    "DecodeError",
    "DuplexChannel",
    "Envelope",
    "InboundType",
    "SessionClient",
    "SessionOutcome",
    "SessionState",
    "SynthesisResult",
    "SynthesisSession",
    "WebSocketChannel",
    "decode",
    "encode",
    "realtime_url",
    "synthesize_to_file",
    "websocket_connector",
]
