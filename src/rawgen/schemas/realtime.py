"""Realtime TTS session configuration and outbound message schemas."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

ResponseFormat = Literal["pcm", "mp3", "opus", "wav"]


class SessionConfig(BaseModel):
    """Synthesis parameters negotiated when a session is opened."""

    voice: str = Field(
        default="Cherry",
        description="Voice name passed through to the provider.",
    )
    language_type: str = Field(
        default="Auto",
        description="Language hint, e.g. 'Auto', 'Chinese', 'English'.",
    )
    response_format: ResponseFormat = Field(
        default="pcm",
        description="Encoding of the audio the server streams back.",
    )
    sample_rate: int = Field(
        default=24000,
        gt=0,
        description="Output sample rate in Hz.",
    )
    instructions: Optional[str] = Field(
        default=None,
        description="Style instructions (instruct models only).",
    )
    mode: Literal["commit", "server_commit"] = Field(
        default="commit",
        description="'commit' synthesizes only after an explicit commit.",
    )


class SessionConfigureMessage(BaseModel):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAppendMessage(BaseModel):
    type: Literal["input_text_buffer.append"] = "input_text_buffer.append"
    text: str


class InputCommitMessage(BaseModel):
    type: Literal["input_text_buffer.commit"] = "input_text_buffer.commit"


class SessionFinishMessage(BaseModel):
    type: Literal["session.finish"] = "session.finish"


OutboundMessage = Union[
    SessionConfigureMessage,
    InputAppendMessage,
    InputCommitMessage,
    SessionFinishMessage,
]
