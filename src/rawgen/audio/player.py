"""Local playback of synthesized audio files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Protocol, Union

from ..errors import UnsupportedAudioFormatError, UnsupportedSampleFormatError
from .wav import WavDescriptor, parse_wav

logger = logging.getLogger(__name__)

# WAV stores 8-bit PCM unsigned, wider depths signed little-endian; 32-bit
# output from the realtime service is IEEE float.
SAMPLE_FORMATS: dict[int, str] = {
    8: "u8",
    16: "s16le",
    32: "f32le",
}

PLAYABLE_EXTENSIONS = (".wav", ".mp3")


def sample_format_for(bits_per_sample: int) -> str:
    """Return the playback sample format for a bit depth."""

    try:
        return SAMPLE_FORMATS[bits_per_sample]
    except KeyError:
        raise UnsupportedSampleFormatError(bits_per_sample) from None


def float32_to_int16(pcm: bytes) -> bytes:
    """Convert little-endian float32 samples in [-1, 1] to signed 16-bit PCM."""

    import numpy as np

    samples = np.frombuffer(pcm, dtype="<f4")
    return (np.clip(samples, -1.0, 1.0) * 32767.0).astype("<i2").tobytes()


class PlaybackSink(Protocol):
    """Anything that can push PCM to an audio output device."""

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        channel_count: int,
        bits_per_sample: int,
    ) -> None: ...


class SimpleAudioSink:
    """Blocking playback through the default output device via simpleaudio."""

    def __init__(self) -> None:
        import simpleaudio

        self._backend = simpleaudio

    def play_pcm(
        self,
        pcm: bytes,
        *,
        sample_rate: int,
        channel_count: int,
        bits_per_sample: int,
    ) -> None:
        # simpleaudio only plays integer PCM
        if sample_format_for(bits_per_sample) == "f32le":
            pcm = float32_to_int16(pcm)
            bits_per_sample = 16
        play_obj = self._backend.play_buffer(
            pcm,
            num_channels=channel_count,
            bytes_per_sample=bits_per_sample // 8,
            sample_rate=sample_rate,
        )
        play_obj.wait_done()


def play_wav(
    source: Union[bytes, BinaryIO],
    sink: PlaybackSink,
) -> WavDescriptor:
    """Parse a WAV container and play its payload."""

    descriptor, payload = parse_wav(source)
    sample_format = sample_format_for(descriptor.bits_per_sample)
    logger.info(
        f"Playing WAV: {descriptor.sample_rate} Hz, {descriptor.channel_count} ch, "
        f"{sample_format}, {descriptor.payload_length} bytes"
    )
    sink.play_pcm(
        payload.read(),
        sample_rate=descriptor.sample_rate,
        channel_count=descriptor.channel_count,
        bits_per_sample=descriptor.bits_per_sample,
    )
    return descriptor


def decode_mp3(path: Path) -> tuple[bytes, WavDescriptor]:
    """Decode an MP3 file to 16-bit PCM with pydub (requires ffmpeg)."""

    from pydub import AudioSegment

    segment = AudioSegment.from_file(str(path), format="mp3").set_sample_width(2)
    pcm = segment.raw_data
    descriptor = WavDescriptor(
        sample_rate=segment.frame_rate,
        bits_per_sample=segment.sample_width * 8,
        channel_count=segment.channels,
        payload_length=len(pcm),
    )
    return pcm, descriptor


def play_file(path: Union[str, Path], sink: Optional[PlaybackSink] = None) -> WavDescriptor:
    """Play an audio file through ``sink`` (the default device if omitted)."""

    path = Path(path)
    extension = path.suffix.lower()
    if extension not in PLAYABLE_EXTENSIONS:
        raise UnsupportedAudioFormatError(extension, PLAYABLE_EXTENSIONS)

    if sink is None:
        sink = SimpleAudioSink()

    if extension == ".wav":
        with path.open("rb") as handle:
            return play_wav(handle, sink)

    pcm, descriptor = decode_mp3(path)
    logger.info(f"Playing MP3 {path.name}: {descriptor.sample_rate} Hz, {descriptor.channel_count} ch")
    sink.play_pcm(
        pcm,
        sample_rate=descriptor.sample_rate,
        channel_count=descriptor.channel_count,
        bits_per_sample=descriptor.bits_per_sample,
    )
    return descriptor


__all__ = [
    "PlaybackSink",
    "SAMPLE_FORMATS",
    "SimpleAudioSink",
    "decode_mp3",
    "float32_to_int16",
    "play_file",
    "play_wav",
    "sample_format_for",
]
