"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    dashscope_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("DASHSCOPE_API_KEY", "dashscope_api_key"),
    )
    dashscope_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://dashscope.aliyuncs.com/api/v1"),
        validation_alias=AliasChoices("DASHSCOPE_BASE_URL", "dashscope_base_url"),
    )
    realtime_model: str = Field(
        default="qwen3-tts-flash-realtime",
        validation_alias=AliasChoices("DASHSCOPE_REALTIME_MODEL", "realtime_model"),
    )

    # Session timing and framing
    handshake_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("REALTIME_HANDSHAKE_TIMEOUT", "handshake_timeout"),
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias=AliasChoices("REALTIME_CONNECT_TIMEOUT", "connect_timeout"),
    )
    text_chunk_chars: int = Field(
        default=2000,
        ge=1,
        validation_alias=AliasChoices("REALTIME_TEXT_CHUNK_CHARS", "text_chunk_chars"),
    )
    require_terminal_event: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "REALTIME_REQUIRE_TERMINAL_EVENT",
            "require_terminal_event",
        ),
        description=(
            "Report a connection error instead of success when the server closes "
            "the channel without sending session.finished."
        ),
    )

    # Logging
    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices("LOGGING_SETTINGS_PATH", "logging_settings_path"),
    )
    log_dir: Path = Field(
        default_factory=lambda: Path("logs"),
        validation_alias=AliasChoices("LOG_DIR", "log_dir"),
    )

    def api_key(self) -> Optional[str]:
        if self.dashscope_api_key is None:
            return None
        return self.dashscope_api_key.get_secret_value() or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
