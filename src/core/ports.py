"""Ports (interfaces) used by the forwarding engine.

Ports define the minimal contracts for the outbound transport and the chain
store so the engine can be driven by the Bot API, a test double, or anything
else that speaks these six operations.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from core.models import ChatId, MediaItem, MessageChain

SEND_MEDIA = "send-media"
SEND_MEDIA_GROUP = "send-media-group"
SEND_TEXT = "send-text"
EDIT_CAPTION = "edit-caption"
EDIT_TEXT = "edit-text"
DELETE_MESSAGE = "delete-message"


class TransportPort(Protocol):
    """One remote call per method; failures raise core.errors.TransportError."""

    async def send_media(self, chat_id: ChatId, item: MediaItem, caption: str) -> int:
        ...

    async def send_media_group(self, chat_id: ChatId, items: Sequence[MediaItem], caption: str) -> List[int]:
        """Return the ids of every message in the group, the captioned one first."""
        ...

    async def send_text(self, chat_id: ChatId, text: str, disable_web_page_preview: bool = False) -> int:
        ...

    async def edit_caption(self, chat_id: ChatId, message_id: int, caption: str) -> None:
        ...

    async def edit_text(
        self,
        chat_id: ChatId,
        message_id: int,
        text: str,
        disable_web_page_preview: bool = False,
    ) -> None:
        ...

    async def delete_message(self, chat_id: ChatId, message_id: int) -> None:
        ...


class ChainStorePort(Protocol):
    """Persistence of chain metadata keyed by source message and target chat."""

    def get_chain(self, source_message_id: str, chat_id: ChatId) -> Optional[MessageChain]:
        ...

    def save_chain(self, chain: MessageChain) -> None:
        ...

    def delete_chain(self, source_message_id: str, chat_id: ChatId) -> None:
        ...
