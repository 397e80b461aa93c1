"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from merchai.config import DEFAULT_MODEL, Settings

ENV_VARS = [
    "GEMINI_API_KEY",
    "API_KEY",
    "MERCHAI_MODEL",
    "MERCHAI_REQUEST_TIMEOUT",
    "MERCHAI_OUTPUT_DIR",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_ALLOWED_CHAT_IDS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = Settings.from_env(load_dotenv_file=False)
    assert settings.api_key == ""
    assert settings.model == DEFAULT_MODEL
    assert settings.request_timeout is None
    assert settings.output_dir == Path("outputs")
    assert settings.allowed_chat_ids == frozenset()


def test_reads_environment(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    monkeypatch.setenv("MERCHAI_MODEL", "gemini-3-pro-image-preview")
    monkeypatch.setenv("MERCHAI_REQUEST_TIMEOUT", "45")
    monkeypatch.setenv("MERCHAI_OUTPUT_DIR", "/tmp/mockups")
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TELEGRAM_ALLOWED_CHAT_IDS", "111, 222,")

    settings = Settings.from_env(load_dotenv_file=False)
    assert settings.api_key == "g-key"
    assert settings.model == "gemini-3-pro-image-preview"
    assert settings.request_timeout == 45.0
    assert settings.output_dir == Path("/tmp/mockups")
    assert settings.telegram_token == "123:abc"
    assert settings.allowed_chat_ids == frozenset({111, 222})


def test_api_key_fallback(monkeypatch):
    monkeypatch.setenv("API_KEY", "legacy")
    assert Settings.from_env(load_dotenv_file=False).api_key == "legacy"


@pytest.mark.parametrize("raw", ["0", "-5"])
def test_non_positive_timeout_is_rejected(monkeypatch, raw):
    monkeypatch.setenv("MERCHAI_REQUEST_TIMEOUT", raw)
    with pytest.raises(ValueError):
        Settings.from_env(load_dotenv_file=False)
