"""WAV (RIFF) container framing for raw PCM audio.

The writer always emits the canonical 44-byte layout: a RIFF group header,
a 16-byte ``fmt `` descriptor and a ``data`` chunk. The reader walks chunks,
skips anything it does not recognise, and stops at the ``data`` chunk.
"""

from __future__ import annotations

import io
import logging
import struct
from dataclasses import dataclass
from typing import BinaryIO, Union

from ..errors import ContainerFormatError, OutputWriteError

logger = logging.getLogger(__name__)

RIFF_MAGIC = b"RIFF"
WAVE_MAGIC = b"WAVE"
FMT_TAG = b"fmt "
DATA_TAG = b"data"

HEADER_SIZE = 44
GROUP_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
FMT_CHUNK_SIZE = 16
PCM_AUDIO_FORMAT = 1

_MAX_UINT32 = 0xFFFFFFFF
MAX_PAYLOAD_LENGTH = _MAX_UINT32 - 36
_SKIP_BLOCK_SIZE = 64 * 1024

_GROUP_HEADER = struct.Struct("<4sI4s")
_CHUNK_HEADER = struct.Struct("<4sI")
_FMT_BODY = struct.Struct("<HHIIHH")


@dataclass(frozen=True)
class WavDescriptor:
    """The four values that fully determine a canonical WAV header."""

    sample_rate: int
    bits_per_sample: int
    channel_count: int
    payload_length: int

    @property
    def block_align(self) -> int:
        return self.channel_count * self.bits_per_sample // 8

    @property
    def byte_rate(self) -> int:
        return self.sample_rate * self.block_align


def _validate_format(sample_rate: int, bits_per_sample: int, channel_count: int) -> None:
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if channel_count <= 0:
        raise ValueError(f"channel_count must be positive, got {channel_count}")
    if bits_per_sample <= 0 or bits_per_sample % 8:
        raise ValueError(
            f"bits_per_sample must be a positive multiple of 8, got {bits_per_sample}"
        )


def build_header(
    payload_length: int,
    sample_rate: int,
    bits_per_sample: int,
    channel_count: int,
) -> bytes:
    """Return the 44-byte header for ``payload_length`` bytes of PCM."""

    _validate_format(sample_rate, bits_per_sample, channel_count)
    if payload_length < 0 or payload_length > MAX_PAYLOAD_LENGTH:
        raise ValueError(f"payload_length out of range: {payload_length}")

    block_align = channel_count * bits_per_sample // 8
    byte_rate = sample_rate * block_align

    header = _GROUP_HEADER.pack(RIFF_MAGIC, payload_length + 36, WAVE_MAGIC)
    header += _CHUNK_HEADER.pack(FMT_TAG, FMT_CHUNK_SIZE)
    header += _FMT_BODY.pack(
        PCM_AUDIO_FORMAT,
        channel_count,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
    )
    header += _CHUNK_HEADER.pack(DATA_TAG, payload_length)
    return header


def build_wav(
    pcm: bytes,
    sample_rate: int,
    bits_per_sample: int,
    channel_count: int,
) -> bytes:
    """Wrap raw PCM bytes in a canonical WAV container.

    Pure and deterministic: identical inputs always yield identical bytes.
    """

    return build_header(len(pcm), sample_rate, bits_per_sample, channel_count) + bytes(pcm)


class PayloadReader(io.RawIOBase):
    """Read-only view over the ``data`` chunk of a parsed container."""

    def __init__(self, source: BinaryIO, length: int):
        super().__init__()
        self._source = source
        self._remaining = length

    @property
    def remaining(self) -> int:
        return self._remaining

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self._remaining <= 0:
            return 0
        view = memoryview(buffer)
        wanted = min(len(view), self._remaining)
        data = self._source.read(wanted)
        if not data:
            return 0
        view[: len(data)] = data
        self._remaining -= len(data)
        return len(data)


class _ChunkScanner:
    """Tracks the read offset while walking a RIFF stream."""

    def __init__(self, source: BinaryIO):
        self.source = source
        self.offset = 0

    def read_exact(self, size: int, what: str) -> bytes:
        data = self.source.read(size)
        if len(data) != size:
            raise ContainerFormatError(
                f"truncated {what}: expected {size} bytes, got {len(data)}",
                offset=self.offset,
            )
        self.offset += size
        return data

    def skip(self, size: int, what: str) -> None:
        remaining = size
        while remaining > 0:
            block = self.source.read(min(remaining, _SKIP_BLOCK_SIZE))
            if not block:
                raise ContainerFormatError(
                    f"truncated {what}: {remaining} of {size} bytes missing",
                    offset=self.offset,
                )
            remaining -= len(block)
            self.offset += len(block)


def parse_wav(source: Union[bytes, bytearray, BinaryIO]) -> tuple[WavDescriptor, PayloadReader]:
    """Parse a WAV container into its descriptor and a payload stream.

    Raises ``ContainerFormatError`` on a bad group header, a truncated chunk,
    a payload chunk that precedes every format descriptor, or end of input
    before the payload chunk. Nothing is returned on failure.
    """

    if isinstance(source, (bytes, bytearray)):
        source = io.BytesIO(bytes(source))

    scanner = _ChunkScanner(source)
    group = scanner.read_exact(GROUP_HEADER_SIZE, "RIFF header")
    group_magic, _, form_magic = _GROUP_HEADER.unpack(group)
    if group_magic != RIFF_MAGIC:
        raise ContainerFormatError("missing RIFF magic", offset=0)
    if form_magic != WAVE_MAGIC:
        raise ContainerFormatError("missing WAVE magic", offset=8)

    fmt_fields: tuple[int, int, int] | None = None

    while True:
        chunk_offset = scanner.offset
        header = source.read(CHUNK_HEADER_SIZE)
        if not header:
            raise ContainerFormatError("no data chunk before end of input", offset=chunk_offset)
        if len(header) != CHUNK_HEADER_SIZE:
            raise ContainerFormatError(
                f"truncated chunk header: got {len(header)} of {CHUNK_HEADER_SIZE} bytes",
                offset=chunk_offset,
            )
        scanner.offset += CHUNK_HEADER_SIZE
        tag, size = _CHUNK_HEADER.unpack(header)

        if tag == FMT_TAG:
            if size < FMT_CHUNK_SIZE:
                raise ContainerFormatError(
                    f"fmt chunk too short: {size} bytes", offset=chunk_offset
                )
            body = scanner.read_exact(FMT_CHUNK_SIZE, "fmt chunk")
            scanner.skip(size - FMT_CHUNK_SIZE, "fmt chunk")
            _, channels, sample_rate, _, _, bits = _FMT_BODY.unpack(body)
            if fmt_fields is not None:
                logger.warning(f"Duplicate fmt chunk at byte {chunk_offset}; using the later one")
            fmt_fields = (sample_rate, bits, channels)
        elif tag == DATA_TAG:
            if fmt_fields is None:
                raise ContainerFormatError("data chunk before fmt chunk", offset=chunk_offset)
            sample_rate, bits, channels = fmt_fields
            descriptor = WavDescriptor(
                sample_rate=sample_rate,
                bits_per_sample=bits,
                channel_count=channels,
                payload_length=size,
            )
            return descriptor, PayloadReader(source, size)
        else:
            logger.debug(f"Skipping {tag!r} chunk ({size} bytes) at byte {chunk_offset}")
            scanner.skip(size, f"{tag!r} chunk")


class WavStreamWriter:
    """Write PCM into a seekable file as a WAV container without buffering it.

    A placeholder header is written up front; ``close()`` rewrites it with the
    final payload length.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        *,
        sample_rate: int,
        bits_per_sample: int = 16,
        channel_count: int = 1,
    ):
        _validate_format(sample_rate, bits_per_sample, channel_count)
        self._file = fileobj
        self._start = fileobj.tell()
        self.sample_rate = sample_rate
        self.bits_per_sample = bits_per_sample
        self.channel_count = channel_count
        self.payload_length = 0
        self.closed = False
        self._file.write(build_header(0, sample_rate, bits_per_sample, channel_count))

    def write(self, data: bytes) -> int:
        if self.closed:
            raise ValueError("write to closed WavStreamWriter")
        if self.payload_length + len(data) > MAX_PAYLOAD_LENGTH:
            raise OutputWriteError(
                f"WAV payload would exceed {MAX_PAYLOAD_LENGTH} bytes"
            )
        written = self._file.write(data)
        self.payload_length += len(data)
        return written if written is not None else len(data)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        if self.closed:
            return
        end = self._file.tell()
        self._file.seek(self._start)
        self._file.write(
            build_header(
                self.payload_length,
                self.sample_rate,
                self.bits_per_sample,
                self.channel_count,
            )
        )
        self._file.seek(end)
        self._file.flush()
        self.closed = True

    def __enter__(self) -> "WavStreamWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = [
    "DATA_TAG",
    "FMT_TAG",
    "HEADER_SIZE",
    "MAX_PAYLOAD_LENGTH",
    "PayloadReader",
    "RIFF_MAGIC",
    "WAVE_MAGIC",
    "WavDescriptor",
    "WavStreamWriter",
    "build_header",
    "build_wav",
    "parse_wav",
]
