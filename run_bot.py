#!/usr/bin/env python3
"""
run_bot.py — MerchAI Studio Telegram Bot entry point.

Usage:
    python run_bot.py

Required env vars (in .env):
    GEMINI_API_KEY=...
    TELEGRAM_BOT_TOKEN=...

Optional:
    TELEGRAM_ALLOWED_CHAT_IDS=123456,789012   # whitelist (leave empty = allow all)
    MERCHAI_MODEL=gemini-2.5-flash-image
    MERCHAI_REQUEST_TIMEOUT=90
"""

from __future__ import annotations

import logging
import sys

from merchai.config import Settings

logging.basicConfig(
    format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


def main() -> None:
    settings = Settings.from_env()

    if not settings.telegram_token:
        logger.error("TELEGRAM_BOT_TOKEN not set in environment / .env")
        sys.exit(1)

    if not settings.api_key:
        logger.error("GEMINI_API_KEY not set in environment / .env")
        sys.exit(1)

    logger.info("Starting MerchAI Studio Bot (model %s)...", settings.model)
    if settings.allowed_chat_ids:
        logger.info("Restricted to %d chat(s)", len(settings.allowed_chat_ids))
    logger.info("Polling for updates — press Ctrl+C to stop")

    from bot.telegram_bot import build_app
    app = build_app(settings)
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
