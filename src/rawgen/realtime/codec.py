"""Encode outbound session messages and decode inbound envelopes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ..schemas.realtime import OutboundMessage

logger = logging.getLogger(__name__)


class InboundType(str, Enum):
    READY = "session.updated"
    AUDIO_DELTA = "response.audio.delta"
    COMPLETE = "session.finished"
    ERROR = "error"


_INBOUND_BY_WIRE = {member.value: member for member in InboundType}


class DecodeError(ValueError):
    """An inbound frame that could not be turned into an envelope.

    Never fatal: the receive loop drops the frame and keeps reading.
    """


@dataclass(frozen=True)
class Envelope:
    type: InboundType
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def delta(self) -> Any:
        return self.payload.get("delta")

    @property
    def message(self) -> str:
        """Human-readable error text, flat or nested under ``error``."""

        message = self.payload.get("message")
        if isinstance(message, str) and message:
            return message
        error = self.payload.get("error")
        if isinstance(error, dict):
            nested = error.get("message")
            if isinstance(nested, str) and nested:
                return nested
        elif isinstance(error, str) and error:
            return error
        return "unknown server error"


def encode(message: OutboundMessage) -> str:
    """Serialize an outbound message to its JSON wire form."""

    return message.model_dump_json(exclude_none=True)


def decode(frame: Union[str, bytes, bytearray]) -> Envelope:
    """Parse one inbound frame.

    Raises ``DecodeError`` for frames that are not JSON objects, lack a
    string ``type``, or carry a type this client does not handle.
    """

    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"frame is not UTF-8: {exc}") from exc

    try:
        data = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"frame is not JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise DecodeError(f"frame is not an object: {type(data).__name__}")

    wire_type = data.get("type")
    if not isinstance(wire_type, str):
        raise DecodeError("frame has no string 'type'")

    inbound_type: Optional[InboundType] = _INBOUND_BY_WIRE.get(wire_type)
    if inbound_type is None:
        raise DecodeError(f"unrecognized frame type '{wire_type}'")

    payload = {key: value for key, value in data.items() if key != "type"}
    return Envelope(type=inbound_type, payload=payload)


__all__ = ["DecodeError", "Envelope", "InboundType", "decode", "encode"]
