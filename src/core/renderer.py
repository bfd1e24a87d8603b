"""Render a SourceContent snapshot into target text plus media.

The result is a single MarkdownV2 document; the dispatcher decides later how
it is cut into physical messages.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from core.config import RelayConfig
from core.markdown_v2 import escape_markdown_v2, escape_url
from core.models import PHOTO, EmbedBlock, MediaItem, MentionDirectory, RenderedMessage, SourceContent, SourceOrigin
from core.splitter import SEPARATOR_LINE
from core.strategy import classify_attachment
from core.transcoder import transcode

LOGGER = logging.getLogger(__name__)

FALLBACK_TEXT = "💬 *Message*"


def build_source_header(origin: Optional[SourceOrigin]) -> Optional[str]:
    """``[server](invite) → \\#channel`` followed by the separator line."""

    if origin is None or not origin.server_name or not origin.channel_name:
        return None
    server = escape_markdown_v2(origin.server_name)
    if origin.invite_url:
        server = f"[{server}]({escape_url(origin.invite_url)})"
    return f"{server} → \\#{escape_markdown_v2(origin.channel_name)}\n{SEPARATOR_LINE}"


def _render_embed(embed: EmbedBlock, mentions: MentionDirectory) -> Tuple[str, List[MediaItem]]:
    lines: List[str] = []
    media: List[MediaItem] = []
    if embed.title:
        lines.append(f"*{escape_markdown_v2(embed.title)}*")
    if embed.description:
        lines.append(transcode(embed.description, mentions))
    if embed.url:
        lines.append(f"🔗 [Link]({escape_url(embed.url)})")
    for item in embed.fields:
        lines.append(f"\n*{escape_markdown_v2(item.name)}:*\n{transcode(item.value, mentions)}")
    for url in (embed.image_url, embed.thumbnail_url):
        if url:
            media.append(MediaItem(PHOTO, url))
    return "\n".join(lines), media


def render_message(content: SourceContent, config: RelayConfig) -> RenderedMessage:
    sections: List[str] = []
    media: List[MediaItem] = []

    body = transcode(content.text, content.mentions)
    if body:
        sections.append(body)

    for embed in content.embeds:
        text, embed_media = _render_embed(embed, content.mentions)
        if text:
            sections.append(text)
        media.extend(embed_media)

    links: List[str] = []
    for attachment in content.attachments:
        kind = classify_attachment(attachment.filename)
        if kind is None:
            links.append(f"📎 [{escape_markdown_v2(attachment.filename)}]({escape_url(attachment.url)})")
        else:
            media.append(MediaItem(kind, attachment.url))
    if links:
        sections.append("\n".join(links))

    if content.stickers:
        sections.append(f"🎭 {escape_markdown_v2(', '.join(content.stickers))}")

    dropped = [item for item in media if not item.url.strip()]
    if dropped:
        LOGGER.warning("Dropping %s media item(s) without a URL for %s", len(dropped), content.message_id)
        media = [item for item in media if item.url.strip()]

    if not sections and not media:
        sections.append(FALLBACK_TEXT)

    text = "\n\n".join(sections)
    header = None if config.hide_source_header else build_source_header(content.origin)
    if header:
        text = f"{header}\n\n{text}" if text else header

    # Smart previews: large link cards only make sense next to no media at all.
    disable_preview = True if not config.smart_link_previews else not media
    return RenderedMessage(text=text, media=tuple(media), disable_web_page_preview=disable_preview)
