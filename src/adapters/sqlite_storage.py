"""SQLite storage adapter.

Implements the core ChainStorePort using a simple SQLite database.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from core.models import ChatId, MessageChain


class SQLiteChainStore:
    """Thin SQLite wrapper that satisfies the ChainStorePort contract."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - chains: one row per forwarded source message and target chat
        """

        with self._connect() as conn:
            # Fields:
            # - source_message_id: id of the source message (part of the key)
            # - chat_id: target chat, stored as text so @usernames fit too
            # - message_ids: JSON list of physical message ids, head first
            # - attached_ids: JSON list of extra media group message ids
            # - head_is_media: 1 when the head carries a media caption
            # - updated_at: last write, for debugging
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chains (
                    source_message_id TEXT NOT NULL,
                    chat_id TEXT NOT NULL,
                    message_ids TEXT NOT NULL,
                    attached_ids TEXT NOT NULL DEFAULT '[]',
                    head_is_media INTEGER NOT NULL,
                    updated_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (source_message_id, chat_id)
                )
                """
            )

    def get_chain(self, source_message_id: str, chat_id: ChatId) -> Optional[MessageChain]:
        """Return the stored chain, if any."""

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT message_ids, attached_ids, head_is_media
                FROM chains WHERE source_message_id = ? AND chat_id = ?
                """,
                (source_message_id, str(chat_id)),
            ).fetchone()
        if row is None:
            return None
        return MessageChain(
            source_message_id=source_message_id,
            chat_id=chat_id,
            message_ids=tuple(int(value) for value in json.loads(row["message_ids"])),
            head_is_media=bool(row["head_is_media"]),
            attached_ids=tuple(int(value) for value in json.loads(row["attached_ids"])),
        )

    def save_chain(self, chain: MessageChain) -> None:
        """Upsert a chain under its source message id and chat."""

        now = datetime.now(timezone.utc)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO chains (
                    source_message_id,
                    chat_id,
                    message_ids,
                    attached_ids,
                    head_is_media,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_message_id, chat_id) DO UPDATE SET
                    message_ids = excluded.message_ids,
                    attached_ids = excluded.attached_ids,
                    head_is_media = excluded.head_is_media,
                    updated_at = excluded.updated_at
                """,
                (
                    chain.source_message_id,
                    str(chain.chat_id),
                    json.dumps(list(chain.message_ids)),
                    json.dumps(list(chain.attached_ids)),
                    int(chain.head_is_media),
                    now.isoformat(),
                ),
            )

    def delete_chain(self, source_message_id: str, chat_id: ChatId) -> None:
        with self._connect() as conn:
            conn.execute(
                "DELETE FROM chains WHERE source_message_id = ? AND chat_id = ?",
                (source_message_id, str(chat_id)),
            )

    def count_chains(self) -> int:
        """Return how many chains are tracked (used by the CLI status line)."""

        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM chains").fetchone()
        return int(row["total"])
