"""Static configuration for telerelay.

All user-editable settings (target chat, length limits, split strategy,
logging) live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from core.config import build_relay_config

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Where to store the SQLite database with chain metadata.
DB_PATH = os.path.join(os.path.dirname(__file__), "telerelay.db")

CONFIG_PATH = os.environ.get("TELERELAY_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

_telegram = _CONFIG.get("telegram", {})

# Length limits, continuation marker and split strategy, validated once here.
RELAY_CONFIG = build_relay_config(_telegram)

# Chat the chains are forwarded into; the CLI can override it per command.
TARGET_CHAT_ID = _telegram.get("chat_id")

# Optional override of the database location, relative to the project root.
if _CONFIG.get("db_path"):
    DB_PATH = os.path.join(PROJECT_ROOT, _CONFIG["db_path"])

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
