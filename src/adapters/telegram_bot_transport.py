"""Telegram Bot API transport adapter.

Each TransportPort method maps to exactly one Bot API method, except media
groups larger than Telegram's ten-item cap, which are sent in batches.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, List, Sequence

from core.errors import TransportError
from core.models import PHOTO, VIDEO, ChatId, MediaItem
from core.ports import (
    DELETE_MESSAGE,
    EDIT_CAPTION,
    EDIT_TEXT,
    SEND_MEDIA,
    SEND_MEDIA_GROUP,
    SEND_TEXT,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.telegram.org"
PARSE_MODE = "MarkdownV2"
MEDIA_GROUP_LIMIT = 10

_SEND_METHODS = {
    PHOTO: "sendPhoto",
    VIDEO: "sendVideo",
}

# Answers that mean the target is already in the desired state.
_NOT_MODIFIED = "message is not modified"
_ALREADY_DELETED = "message to delete not found"


class TelegramBotTransport:
    """Transport adapter that talks to the Telegram Bot API over HTTPS."""

    def __init__(self, bot_token: str, api_url: str = DEFAULT_API_URL, timeout: float = 30) -> None:
        self._bot_token = bot_token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def _endpoint(self, method: str) -> str:
        # The Bot API endpoint is deterministic and derived from the token.
        return f"{self._api_url}/bot{self._bot_token}/{method}"

    def _post(self, operation: str, method: str, payload: Dict[str, Any]) -> Any:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._endpoint(method), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = json.loads(response.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            raw = e.read().decode("utf-8", errors="replace")
            try:
                body = json.loads(raw)
            except ValueError:
                raise TransportError(operation, f"HTTP {e.code}: {raw}", e.code) from e
        except (urllib.error.URLError, TimeoutError, ValueError) as e:
            raise TransportError(operation, str(e)) from e

        if not body.get("ok"):
            raise TransportError(
                operation,
                body.get("description", "unknown error"),
                body.get("error_code"),
            )
        return body.get("result")

    async def _call(self, operation: str, method: str, payload: Dict[str, Any]) -> Any:
        return await asyncio.to_thread(self._post, operation, method, payload)

    @staticmethod
    def _with_caption(payload: Dict[str, Any], caption: str) -> Dict[str, Any]:
        if caption:
            payload["caption"] = caption
            payload["parse_mode"] = PARSE_MODE
        return payload

    async def _send_single(self, operation: str, chat_id: ChatId, item: MediaItem, caption: str) -> int:
        method = _SEND_METHODS.get(item.kind)
        if method is None:
            raise TransportError(operation, f"unsupported media kind {item.kind!r}")
        payload = self._with_caption({"chat_id": chat_id, item.kind: item.url}, caption)
        result = await self._call(operation, method, payload)
        return int(result["message_id"])

    async def send_media(self, chat_id: ChatId, item: MediaItem, caption: str) -> int:
        return await self._send_single(SEND_MEDIA, chat_id, item, caption)

    async def send_media_group(self, chat_id: ChatId, items: Sequence[MediaItem], caption: str) -> List[int]:
        message_ids: List[int] = []
        for start in range(0, len(items), MEDIA_GROUP_LIMIT):
            batch = items[start : start + MEDIA_GROUP_LIMIT]
            batch_caption = caption if start == 0 else ""
            if len(batch) == 1:
                # Telegram rejects single-item groups.
                message_ids.append(await self._send_single(SEND_MEDIA_GROUP, chat_id, batch[0], batch_caption))
                continue
            media = [{"type": item.kind, "media": item.url} for item in batch]
            self._with_caption(media[0], batch_caption)
            result = await self._call(SEND_MEDIA_GROUP, "sendMediaGroup", {"chat_id": chat_id, "media": media})
            message_ids.extend(int(message["message_id"]) for message in result)
        return message_ids

    async def send_text(self, chat_id: ChatId, text: str, disable_web_page_preview: bool = False) -> int:
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": PARSE_MODE,
            "disable_web_page_preview": disable_web_page_preview,
        }
        result = await self._call(SEND_TEXT, "sendMessage", payload)
        return int(result["message_id"])

    async def edit_caption(self, chat_id: ChatId, message_id: int, caption: str) -> None:
        payload = self._with_caption({"chat_id": chat_id, "message_id": message_id}, caption)
        try:
            await self._call(EDIT_CAPTION, "editMessageCaption", payload)
        except TransportError as exc:
            if _NOT_MODIFIED not in exc.description:
                raise
            LOGGER.debug("Caption of %s unchanged", message_id)

    async def edit_text(
        self,
        chat_id: ChatId,
        message_id: int,
        text: str,
        disable_web_page_preview: bool = False,
    ) -> None:
        payload = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": PARSE_MODE,
            "disable_web_page_preview": disable_web_page_preview,
        }
        try:
            await self._call(EDIT_TEXT, "editMessageText", payload)
        except TransportError as exc:
            if _NOT_MODIFIED not in exc.description:
                raise
            LOGGER.debug("Text of %s unchanged", message_id)

    async def delete_message(self, chat_id: ChatId, message_id: int) -> None:
        try:
            await self._call(DELETE_MESSAGE, "deleteMessage", {"chat_id": chat_id, "message_id": message_id})
        except TransportError as exc:
            if _ALREADY_DELETED not in exc.description:
                raise
            LOGGER.debug("Message %s was already deleted", message_id)
