"""Declarative capability table for realtime synthesis providers.

The session client never consults this table; callers use it to turn user
options into a ``SessionConfig`` before opening a session.
"""

from pathlib import Path
from typing import Union

from pydantic import BaseModel, Field

from rawgen.errors import InvalidSynthesisOption, UnsupportedAudioFormatError
from rawgen.schemas.realtime import ResponseFormat


class OutputFormat(BaseModel):
    """How one output file extension is produced."""

    extension: str
    response_format: ResponseFormat = Field(
        description="Format requested from the server.",
    )
    wrap_in_container: bool = Field(
        default=False,
        description="Wrap streamed PCM in a WAV container locally.",
    )


class RealtimeCapabilities(BaseModel):
    """Formats and rates a realtime provider accepts."""

    provider: str
    formats: dict[str, OutputFormat]
    sample_rates: list[int]
    instruct_marker: str = "-instruct-"

    def format_for(self, path: Union[str, Path]) -> OutputFormat:
        extension = Path(path).suffix.lower()
        try:
            return self.formats[extension]
        except KeyError:
            raise UnsupportedAudioFormatError(extension, tuple(self.formats)) from None

    def supports_instructions(self, model: str) -> bool:
        return self.instruct_marker in model

    def check_sample_rate(self, sample_rate: int) -> None:
        if sample_rate not in self.sample_rates:
            supported = ", ".join(str(rate) for rate in self.sample_rates)
            raise InvalidSynthesisOption(
                "sample_rate",
                f"invalid sample rate {sample_rate}, supported: {supported}",
            )

    def check_instructions(self, model: str, instructions: str | None) -> None:
        if instructions and not self.supports_instructions(model):
            raise InvalidSynthesisOption(
                "instructions",
                f"instructions are only supported by instruct models, not '{model}'",
            )


DASHSCOPE_REALTIME = RealtimeCapabilities(
    provider="dashscope",
    formats={
        ".mp3": OutputFormat(extension=".mp3", response_format="mp3"),
        ".pcm": OutputFormat(extension=".pcm", response_format="pcm"),
        ".opus": OutputFormat(extension=".opus", response_format="opus"),
        ".wav": OutputFormat(extension=".wav", response_format="pcm", wrap_in_container=True),
    },
    sample_rates=[24000, 48000],
)
