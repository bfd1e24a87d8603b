"""Bot API transport factory for telerelay.

Secrets never live in config.json: the bot token comes from the environment
(or a local .env file) so the JSON config can be shared freely.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

from adapters.telegram_bot_transport import DEFAULT_API_URL, TelegramBotTransport


def build_transport() -> TelegramBotTransport:
    """Create a Bot API transport from environment variables.

    BOT_API holds the bot token; TELEGRAM_API_URL points at a self-hosted Bot
    API server when set.
    """

    load_dotenv()

    bot_token = os.getenv("BOT_API")
    api_url = os.getenv("TELEGRAM_API_URL") or DEFAULT_API_URL

    # Fail fast on missing credentials instead of a 404 from the Bot API.
    if not bot_token:
        raise RuntimeError("Missing BOT_API in environment")

    logging.getLogger(__name__).info("Initializing Bot API transport (%s)", api_url)

    return TelegramBotTransport(bot_token, api_url=api_url)
