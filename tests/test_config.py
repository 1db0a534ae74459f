"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from rawgen.config import Settings, get_settings

_ENV_VARS = (
    "DASHSCOPE_API_KEY",
    "DASHSCOPE_BASE_URL",
    "DASHSCOPE_REALTIME_MODEL",
    "REALTIME_HANDSHAKE_TIMEOUT",
    "REALTIME_TEXT_CHUNK_CHARS",
    "REALTIME_REQUIRE_TERMINAL_EVENT",
    "LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.api_key() is None
    assert str(settings.dashscope_base_url).rstrip("/") == "https://dashscope.aliyuncs.com/api/v1"
    assert settings.realtime_model == "qwen3-tts-flash-realtime"
    assert settings.handshake_timeout == 10.0
    assert settings.text_chunk_chars == 2000
    assert settings.require_terminal_event is False
    assert settings.log_dir == Path("logs")


def test_environment_aliases(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-from-env")
    monkeypatch.setenv("DASHSCOPE_REALTIME_MODEL", "qwen3-tts-instruct-flash-realtime")
    monkeypatch.setenv("REALTIME_HANDSHAKE_TIMEOUT", "2.5")
    monkeypatch.setenv("REALTIME_TEXT_CHUNK_CHARS", "500")
    monkeypatch.setenv("REALTIME_REQUIRE_TERMINAL_EVENT", "true")
    monkeypatch.setenv("LOG_DIR", "/tmp/rawgen-logs")

    settings = Settings(_env_file=None)

    assert settings.api_key() == "sk-from-env"
    assert settings.realtime_model == "qwen3-tts-instruct-flash-realtime"
    assert settings.handshake_timeout == 2.5
    assert settings.text_chunk_chars == 500
    assert settings.require_terminal_event is True
    assert settings.log_dir == Path("/tmp/rawgen-logs")


def test_api_key_is_secret(monkeypatch):
    monkeypatch.setenv("DASHSCOPE_API_KEY", "sk-secret")
    settings = Settings(_env_file=None)
    assert "sk-secret" not in repr(settings)


def test_empty_api_key_counts_as_missing():
    assert Settings(_env_file=None, dashscope_api_key="").api_key() is None


@pytest.mark.parametrize(
    "field,value",
    [("handshake_timeout", 0), ("connect_timeout", -1), ("text_chunk_chars", 0)],
)
def test_rejects_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
