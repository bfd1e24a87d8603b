from __future__ import annotations

import pytest

from adapters.source_mapper import build_source_content
from core.models import Attachment, EmbedField, SourceOrigin


def test_maps_full_payload() -> None:
    payload = {
        "id": 987654321,
        "content": "Hi <@42> in <#7>",
        "embeds": [
            {
                "title": "News",
                "description": "body",
                "url": "https://example.com",
                "image": {"url": "https://example.com/i.png"},
                "thumbnail": {"url": "https://example.com/t.png"},
                "fields": [{"name": "A", "value": "B"}],
            }
        ],
        "attachments": [{"url": "https://cdn.example.com/f.pdf", "filename": "f.pdf"}],
        "sticker_items": [{"name": "wave"}, {"id": "1"}],
        "mentions": [{"id": "42", "username": "alice", "global_name": "Alice"}],
        "mention_names": {"channels": {"7": "general"}, "roles": {"5": "mods"}},
        "guild": {"name": "Server"},
        "channel": {"name": "news"},
        "invite_url": "https://discord.gg/abc",
    }

    content = build_source_content(payload)

    assert content.message_id == "987654321"
    assert content.text == "Hi <@42> in <#7>"
    assert content.embeds[0].title == "News"
    assert content.embeds[0].image_url == "https://example.com/i.png"
    assert content.embeds[0].thumbnail_url == "https://example.com/t.png"
    assert content.embeds[0].fields == (EmbedField(name="A", value="B"),)
    assert content.attachments == (Attachment(url="https://cdn.example.com/f.pdf", filename="f.pdf"),)
    assert content.stickers == ("wave",)
    assert content.mentions.users == {"42": "Alice"}
    assert content.mentions.channels == {"7": "general"}
    assert content.mentions.roles == {"5": "mods"}
    assert content.origin == SourceOrigin(server_name="Server", channel_name="news", invite_url="https://discord.gg/abc")


def test_minimal_payload() -> None:
    content = build_source_content({"id": "1"})

    assert content.text == ""
    assert content.embeds == ()
    assert content.origin is None


def test_payload_without_id_is_rejected() -> None:
    with pytest.raises(ValueError):
        build_source_content({"content": "orphan"})
