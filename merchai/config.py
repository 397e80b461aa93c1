"""
config.py — Runtime settings read from the environment (and .env).

Required:
    GEMINI_API_KEY=...            (API_KEY is accepted as a fallback)

Optional:
    MERCHAI_MODEL=gemini-2.5-flash-image
    MERCHAI_REQUEST_TIMEOUT=90    # seconds per Gemini call; unset = wait indefinitely
    MERCHAI_OUTPUT_DIR=outputs
    TELEGRAM_BOT_TOKEN=...
    TELEGRAM_ALLOWED_CHAT_IDS=123456,789012   # whitelist (leave empty = allow all)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv

DEFAULT_MODEL = "gemini-2.5-flash-image"
DEFAULT_OUTPUT_DIR = Path("outputs")


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    if not raw or not raw.strip():
        return None
    value = float(raw)
    if value <= 0:
        raise ValueError(f"MERCHAI_REQUEST_TIMEOUT must be positive, got {raw!r}")
    return value


def _parse_chat_ids(raw: Optional[str]) -> FrozenSet[int]:
    if not raw:
        return frozenset()
    return frozenset(int(part) for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    api_key: str = ""
    model: str = DEFAULT_MODEL
    request_timeout: Optional[float] = None
    output_dir: Path = DEFAULT_OUTPUT_DIR
    telegram_token: str = ""
    allowed_chat_ids: FrozenSet[int] = field(default_factory=frozenset)

    @classmethod
    def from_env(cls, load_dotenv_file: bool = True) -> "Settings":
        if load_dotenv_file:
            load_dotenv()
        env = os.environ
        return cls(
            api_key=env.get("GEMINI_API_KEY") or env.get("API_KEY", ""),
            model=env.get("MERCHAI_MODEL") or DEFAULT_MODEL,
            request_timeout=_parse_timeout(env.get("MERCHAI_REQUEST_TIMEOUT")),
            output_dir=Path(env.get("MERCHAI_OUTPUT_DIR") or DEFAULT_OUTPUT_DIR),
            telegram_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            allowed_chat_ids=_parse_chat_ids(env.get("TELEGRAM_ALLOWED_CHAT_IDS")),
        )
