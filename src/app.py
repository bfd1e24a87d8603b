"""Application entry point for the telerelay developer CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.source_mapper import build_source_content
from adapters.sqlite_storage import SQLiteChainStore
from client import build_transport
from core.dispatcher import plan_parts
from core.models import SourceContent
from core.processor import ForwardProcessor
from core.renderer import render_message

NAME = "TELERELAY"
FONT = "tarty-1"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_PATH = "logs/telerelay.log"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _TokenMaskingFormatter(logging.Formatter):
    """Replaces secret values with ``***``.

    The bot token is part of every Bot API URL, so it would otherwise leak
    through any logged network error.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        # Longest first, so a secret that contains another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _masked_values(redact: dict) -> list[str]:
    # Names of environment variables whose values must never reach a log line.
    if not redact.get("enabled", True):
        return []
    return [os.getenv(name, "") for name in redact.get("patterns", ["BOT_API"])]


def _rotating_file_handler(file_cfg: dict) -> logging.Handler:
    path = file_cfg.get("path", DEFAULT_LOG_PATH)
    if not os.path.isabs(path):
        path = os.path.join(settings.PROJECT_ROOT, path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
        backupCount=int(file_cfg.get("backup_count", 5)),
        encoding="utf-8",
    )


def _configure_logging(config: dict) -> None:
    """Set up console and optional rotating-file logging from ``config.json``."""

    if not config.get("enabled", False):
        return
    load_dotenv()

    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())
    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        handlers.append(_rotating_file_handler(file_cfg))
    if not handlers:
        return

    formatter = _TokenMaskingFormatter(_masked_values(config.get("redact", {})))
    for handler in handlers:
        handler.setFormatter(formatter)
    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, handlers=handlers)


def _load_content(path: str) -> SourceContent:
    """Read a source message from a JSON payload, or a plain text file."""

    with open(path, "r", encoding="utf-8") as handle:
        raw = handle.read()
    if path.endswith(".json"):
        return build_source_content(json.loads(raw))
    return SourceContent(message_id=os.path.basename(path), text=raw)


def _preview(path: str) -> None:
    content = _load_content(path)
    rendered = render_message(content, settings.RELAY_CONFIG)
    plan = plan_parts(rendered, settings.RELAY_CONFIG)
    print(f"Strategy: {plan.strategy} | media: {len(plan.media)} | parts: {len(plan.parts)}")
    for index, part in enumerate(plan.parts):
        role = "caption" if index == 0 and plan.head_is_media else "text"
        print(f"--- part {index} ({role}, {len(part)} chars) ---")
        print(part)


def _build_processor(chat_id: Optional[str]) -> tuple[ForwardProcessor, SQLiteChainStore]:
    target = chat_id or settings.TARGET_CHAT_ID
    if not target:
        raise RuntimeError("telegram.chat_id is required (or pass --chat)")
    store = SQLiteChainStore(settings.DB_PATH)
    store.init_db()
    processor = ForwardProcessor(build_transport(), store, settings.RELAY_CONFIG, target)
    return processor, store


async def _run_command(args: argparse.Namespace) -> None:
    logger = logging.getLogger(__name__)
    processor, store = _build_processor(args.chat)

    if args.command == "send":
        chain = await processor.handle_new(_load_content(args.payload))
        print(f"Sent {chain.source_message_id}: {list(chain.message_ids)}")
    elif args.command == "edit":
        chain = await processor.handle_edit(_load_content(args.payload))
        if chain is None:
            print("No chain recorded for this message; send it first.")
        else:
            print(f"Edited {chain.source_message_id}: {list(chain.message_ids)}")
    elif args.command == "delete":
        failed = await processor.handle_delete(args.message_id)
        if failed:
            print(f"Could not delete: {failed}")
        else:
            print(f"Deleted {args.message_id}")

    logger.info("%s chains tracked", store.count_chains())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="telerelay")
    subparsers = parser.add_subparsers(dest="command", required=True)

    preview = subparsers.add_parser("preview", help="Show the strategy and parts for a payload")
    preview.add_argument("payload", help="Source message JSON (.json) or a plain text file")

    for name, help_text in (
        ("send", "Forward a payload as a new chain"),
        ("edit", "Reconcile an existing chain with an edited payload"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("payload", help="Source message JSON (.json) or a plain text file")
        command.add_argument("--chat", help="Target chat id (defaults to telegram.chat_id)")

    delete = subparsers.add_parser("delete", help="Delete every message of a chain")
    delete.add_argument("message_id", help="Source message id of the chain")
    delete.add_argument("--chat", help="Target chat id (defaults to telegram.chat_id)")

    args = parser.parse_args(argv)
    _print_banner()
    _configure_logging(settings.LOGGING or {})

    if args.command == "preview":
        _preview(args.payload)
        return
    asyncio.run(_run_command(args))


if __name__ == "__main__":
    main()
