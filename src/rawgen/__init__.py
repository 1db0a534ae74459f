"""Realtime speech synthesis streaming and WAV framing."""

__version__ = "0.1.0"
