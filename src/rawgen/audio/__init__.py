"""Audio container framing and local playback."""

from .player import PlaybackSink, SimpleAudioSink, play_file, play_wav, sample_format_for
from .wav import WavDescriptor, WavStreamWriter, build_header, build_wav, parse_wav

__all__ = [
    "PlaybackSink",
    "SimpleAudioSink",
    "WavDescriptor",
    "WavStreamWriter",
    "build_header",
    "build_wav",
    "parse_wav",
    "play_file",
    "play_wav",
    "sample_format_for",
]
