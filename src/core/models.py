"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Tuple, Union

ChatId = Union[int, str]

PHOTO = "photo"
VIDEO = "video"


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str


@dataclass(frozen=True)
class EmbedBlock:
    """A rich embed attached to a source message."""

    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    fields: Tuple[EmbedField, ...] = ()


@dataclass(frozen=True)
class Attachment:
    url: str
    filename: str


@dataclass(frozen=True)
class SourceOrigin:
    """Where a source message was posted, used for the source header."""

    server_name: str
    channel_name: str
    invite_url: Optional[str] = None


@dataclass(frozen=True)
class MentionDirectory:
    """Display names for mention ids found in the source text."""

    users: dict[str, str] = field(default_factory=dict)
    roles: dict[str, str] = field(default_factory=dict)
    channels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SourceContent:
    """Immutable snapshot of a source message taken at dispatch or edit time."""

    message_id: str
    text: str = ""
    embeds: Tuple[EmbedBlock, ...] = ()
    attachments: Tuple[Attachment, ...] = ()
    stickers: Tuple[str, ...] = ()
    origin: Optional[SourceOrigin] = None
    mentions: MentionDirectory = field(default_factory=MentionDirectory)


@dataclass(frozen=True)
class MediaItem:
    kind: str
    url: str


@dataclass(frozen=True)
class RenderedMessage:
    """Target-dialect text plus the media it should travel with."""

    text: str
    media: Tuple[MediaItem, ...] = ()
    disable_web_page_preview: bool = False


@dataclass(frozen=True)
class MessageChain:
    """Ordered physical messages that represent one source message.

    ``message_ids[0]`` is the head. Its role (media caption vs. text) is fixed
    by ``head_is_media`` for the lifetime of the chain. ``attached_ids`` holds
    the extra messages a media group produced next to the head; they are only
    ever removed together with the whole chain.
    """

    source_message_id: str
    chat_id: ChatId
    message_ids: Tuple[int, ...]
    head_is_media: bool
    attached_ids: Tuple[int, ...] = ()

    @property
    def head_id(self) -> int:
        return self.message_ids[0]

    def all_ids(self) -> Tuple[int, ...]:
        return self.message_ids + self.attached_ids

    def with_message_ids(self, message_ids: Tuple[int, ...]) -> "MessageChain":
        return replace(self, message_ids=tuple(message_ids))
