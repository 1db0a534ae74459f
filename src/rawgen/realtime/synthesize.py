"""One-call realtime synthesis into an audio file."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..audio.wav import WavStreamWriter
from ..config import Settings, get_settings
from ..errors import MissingApiKeyError, SessionError
from ..schemas.capabilities import DASHSCOPE_REALTIME, RealtimeCapabilities
from ..schemas.realtime import SessionConfig
from .channel import Connector, realtime_url, websocket_connector
from .session import SessionClient, SessionOutcome, SynthesisSession

logger = logging.getLogger(__name__)

# The realtime service streams 16-bit mono PCM when asked for "pcm".
PCM_BITS_PER_SAMPLE = 16
PCM_CHANNELS = 1


@dataclass
class SynthesisResult:
    path: Path
    model: str
    voice: str
    total_bytes: int
    outcome: SessionOutcome


async def _drive(
    client: SessionClient,
    session: SynthesisSession,
    text: str,
) -> SessionOutcome:
    receiver = asyncio.create_task(client.receive_loop(session))
    try:
        await client.stream_text(session, text)
        await client.commit(session)
        await client.finish(session)
    except SessionError:
        # The reader may already hold the real cause (e.g. a server error
        # that closed the channel under the writer).
        if not receiver.done():
            await client.cancel(session)
        await asyncio.gather(receiver, return_exceptions=True)
        if session.outcome is SessionOutcome.COMPLETED:
            return session.outcome
        if session.error is not None and session.outcome is SessionOutcome.FAILED:
            raise session.error
        raise
    except asyncio.CancelledError:
        receiver.cancel()
        await asyncio.gather(receiver, return_exceptions=True)
        raise
    except Exception:
        if not receiver.done():
            await client.cancel(session)
        await asyncio.gather(receiver, return_exceptions=True)
        raise
    return await receiver


async def synthesize_to_file(
    text: str,
    output_path: Union[str, Path],
    *,
    voice: str = "Cherry",
    model: Optional[str] = None,
    language_type: str = "Auto",
    sample_rate: int = 24000,
    instructions: Optional[str] = None,
    settings: Optional[Settings] = None,
    connector: Optional[Connector] = None,
    capabilities: RealtimeCapabilities = DASHSCOPE_REALTIME,
) -> SynthesisResult:
    """Synthesize ``text`` over a realtime session and write it to ``output_path``.

    The output format follows the file extension. ``.wav`` output is
    requested from the server as raw PCM and wrapped locally so the header
    always matches the payload. Audio is streamed into a hidden partial file
    beside ``output_path`` that replaces it only once the session completes,
    so a failed run leaves an existing file untouched.
    """

    if not text:
        raise ValueError("text must not be empty")

    settings = settings or get_settings()
    model = model or settings.realtime_model
    path = Path(output_path).resolve()

    output_format = capabilities.format_for(path)
    capabilities.check_sample_rate(sample_rate)
    capabilities.check_instructions(model, instructions)

    if connector is None:
        api_key = settings.api_key()
        if not api_key:
            raise MissingApiKeyError("DASHSCOPE_API_KEY")
        connector = websocket_connector(
            realtime_url(str(settings.dashscope_base_url), model),
            api_key,
            open_timeout=settings.connect_timeout,
        )

    config = SessionConfig(
        voice=voice,
        language_type=language_type,
        response_format=output_format.response_format,
        sample_rate=sample_rate,
        instructions=instructions,
    )
    client = SessionClient(
        connector,
        handshake_timeout=settings.handshake_timeout,
        text_chunk_chars=settings.text_chunk_chars,
        require_terminal_event=settings.require_terminal_event,
    )

    logger.info(
        f"Synthesizing {len(text)} chars to {path.name} "
        f"(model={model}, voice={voice}, format={output_format.response_format})"
    )
    partial = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.part")
    try:
        with ExitStack() as stack:
            sink = stack.enter_context(partial.open("wb"))
            if output_format.wrap_in_container:
                sink = stack.enter_context(
                    WavStreamWriter(
                        sink,
                        sample_rate=sample_rate,
                        bits_per_sample=PCM_BITS_PER_SAMPLE,
                        channel_count=PCM_CHANNELS,
                    )
                )
            session = await client.open(config, sink)
            outcome = await _drive(client, session, text)

        if outcome is not SessionOutcome.COMPLETED:
            raise session.error
        partial.replace(path)
    finally:
        partial.unlink(missing_ok=True)

    return SynthesisResult(
        path=path,
        model=model,
        voice=voice,
        total_bytes=session.total_bytes,
        outcome=outcome,
    )


__all__ = ["SynthesisResult", "synthesize_to_file"]
