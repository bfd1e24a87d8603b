"""Source-payload-to-core message mapping adapter.

This keeps the shape of the source platform's message JSON out of the core
engine. Payloads follow the Discord message object, plus a few optional keys
the listener fills in from its caches (guild/channel names, invite URL and
role/channel display names).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from core.models import Attachment, EmbedBlock, EmbedField, MentionDirectory, SourceContent, SourceOrigin


def _nested_url(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        return value.get("url") or None
    return None


def _build_embed(raw: Dict[str, Any]) -> EmbedBlock:
    return EmbedBlock(
        title=raw.get("title") or None,
        description=raw.get("description") or None,
        url=raw.get("url") or None,
        image_url=_nested_url(raw.get("image")),
        thumbnail_url=_nested_url(raw.get("thumbnail")),
        fields=tuple(
            EmbedField(name=str(item.get("name", "")), value=str(item.get("value", "")))
            for item in raw.get("fields", [])
        ),
    )


def _build_origin(payload: Dict[str, Any]) -> Optional[SourceOrigin]:
    guild = payload.get("guild") or {}
    channel = payload.get("channel") or {}
    if not guild.get("name") or not channel.get("name"):
        return None
    return SourceOrigin(
        server_name=guild["name"],
        channel_name=channel["name"],
        invite_url=payload.get("invite_url") or None,
    )


def _build_mentions(payload: Dict[str, Any]) -> MentionDirectory:
    names = payload.get("mention_names") or {}
    users = {str(key): value for key, value in (names.get("users") or {}).items()}
    # Discord ships resolved user mentions inline; prefer the display name.
    for user in payload.get("mentions", []):
        display = user.get("global_name") or user.get("username")
        if user.get("id") and display:
            users.setdefault(str(user["id"]), display)
    return MentionDirectory(
        users=users,
        roles={str(key): value for key, value in (names.get("roles") or {}).items()},
        channels={str(key): value for key, value in (names.get("channels") or {}).items()},
    )


def build_source_content(payload: Dict[str, Any]) -> SourceContent:
    """Build a core SourceContent snapshot from a source message payload."""

    if "id" not in payload:
        raise ValueError("Source payload has no message id")

    attachments = tuple(
        Attachment(url=item.get("url", ""), filename=item.get("filename", ""))
        for item in payload.get("attachments", [])
    )
    stickers = tuple(
        item["name"]
        for item in payload.get("sticker_items", payload.get("stickers", []))
        if item.get("name")
    )
    return SourceContent(
        message_id=str(payload["id"]),
        text=payload.get("content") or "",
        embeds=tuple(_build_embed(item) for item in payload.get("embeds", [])),
        attachments=attachments,
        stickers=stickers,
        origin=_build_origin(payload),
        mentions=_build_mentions(payload),
    )
