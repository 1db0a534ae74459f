"""Decode streamed audio fragments straight into an output sink."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Literal, Optional, Protocol

from ..errors import ChunkDecodeError, OutputWriteError, SessionStateError

logger = logging.getLogger(__name__)

TransportEncoding = Literal["base64", "hex"]


class AudioSink(Protocol):
    def write(self, data: bytes) -> Any: ...

    def flush(self) -> None: ...


class ChunkAssembler:
    """Write each decoded fragment to ``sink`` as soon as it arrives.

    Nothing is buffered here, so memory use does not grow with the length of
    the stream. A slow sink stalls the caller, which is the only backpressure
    the protocol has.
    """

    def __init__(
        self,
        sink: Optional[AudioSink] = None,
        *,
        encoding: TransportEncoding = "base64",
    ):
        if encoding not in ("base64", "hex"):
            raise ValueError(f"unsupported transport encoding '{encoding}'")
        self._sink = sink
        self._encoding = encoding
        self._total_bytes = 0
        self._chunk_count = 0
        self._finalized = False

    @property
    def total_bytes(self) -> int:
        return self._total_bytes

    @property
    def chunk_count(self) -> int:
        return self._chunk_count

    def _decode(self, encoded: Any) -> bytes:
        if not isinstance(encoded, str):
            raise ChunkDecodeError(
                f"audio fragment must be a string, got {type(encoded).__name__}"
            )
        try:
            if self._encoding == "hex":
                return bytes.fromhex(encoded)
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ChunkDecodeError(f"cannot decode audio chunk: {exc}") from exc

    def append(self, encoded: Any) -> bytes:
        """Decode one fragment, write it to the sink and return the raw bytes."""

        if self._finalized:
            raise SessionStateError("assembler already finalized")

        chunk = self._decode(encoded)
        if self._sink is not None and chunk:
            try:
                self._sink.write(chunk)
            except OSError as exc:
                raise OutputWriteError(f"cannot write audio: {exc}") from exc

        self._total_bytes += len(chunk)
        self._chunk_count += 1
        logger.debug(f"Audio chunk #{self._chunk_count}: {len(chunk)} bytes (total {self._total_bytes})")
        return chunk

    def finalize(self) -> int:
        """Flush the sink and return the cumulative byte count."""

        if not self._finalized:
            self._finalized = True
            if self._sink is not None:
                try:
                    self._sink.flush()
                except OSError as exc:
                    raise OutputWriteError(f"cannot flush audio output: {exc}") from exc
        return self._total_bytes

    def release(self) -> None:
        """Stop writing to the sink without raising; used on abort paths."""

        if self._finalized:
            return
        self._finalized = True
        if self._sink is not None:
            try:
                self._sink.flush()
            except (OSError, ValueError) as exc:
                logger.warning(f"Failed to flush audio output on release: {exc}")
        self._sink = None


__all__ = ["AudioSink", "ChunkAssembler", "TransportEncoding"]
