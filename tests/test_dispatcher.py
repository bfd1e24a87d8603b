from __future__ import annotations

import asyncio

import pytest

from core.config import RelayConfig
from core.dispatcher import ChainDispatcher, plan_parts
from core.errors import ChainStepError
from core.markdown_v2 import is_escaped
from core.models import PHOTO, MediaItem, MessageChain, RenderedMessage
from core.splitter import SEPARATOR_LINE
from core.strategy import MEDIA_WITH_CAPTION, SEPARATE, SMART_SPLIT, TEXT_ONLY
from core.transcoder import transcode
from fakes import FakeTransport, sentences

CHAT = -1001
MARKER = "\\.\\.\\.\\(continued\\)"
PHOTO_ITEM = MediaItem(PHOTO, "https://cdn.example.com/p.jpg")


def test_dispatch_short_text_creates_single_message() -> None:
    transport = FakeTransport()
    dispatcher = ChainDispatcher(transport, RelayConfig())

    chain = asyncio.run(dispatcher.dispatch("src-1", CHAT, RenderedMessage(text="Hello", disable_web_page_preview=True)))

    assert chain == MessageChain(source_message_id="src-1", chat_id=CHAT, message_ids=(100,), head_is_media=False)
    assert transport.calls == [("send_text", CHAT, "Hello", True)]


def test_dispatch_photo_with_long_caption_smart_splits() -> None:
    transport = FakeTransport()
    dispatcher = ChainDispatcher(transport, RelayConfig())
    text = sentences(2000)

    chain = asyncio.run(dispatcher.dispatch("src-2", CHAT, RenderedMessage(text=text, media=(PHOTO_ITEM,))))

    assert chain.message_ids == (100, 101)
    assert chain.head_is_media
    assert transport.methods() == ["send_media", "send_text"]
    caption = transport.calls[0][3]
    assert len(caption) <= 900
    assert caption.endswith(MARKER)
    # Trailing parts never unfurl link previews.
    assert transport.calls[1][3] is True
    assert f"{caption[: -len(MARKER)].strip()} {transport.calls[1][2]}" == text


def test_dispatch_media_group_records_attached_ids() -> None:
    transport = FakeTransport()
    dispatcher = ChainDispatcher(transport, RelayConfig())
    media = (PHOTO_ITEM, MediaItem(PHOTO, "https://cdn.example.com/q.jpg"))

    chain = asyncio.run(dispatcher.dispatch("src-3", CHAT, RenderedMessage(text="two photos", media=media)))

    assert chain.message_ids == (100,)
    assert chain.attached_ids == (101,)
    assert transport.calls == [("send_media_group", CHAT, media, "two photos")]


def test_plan_text_only_long_text_drops_separator() -> None:
    body = sentences(5000)
    rendered = RenderedMessage(text=f"Header\n{SEPARATOR_LINE}\n\n{body}")

    plan = plan_parts(rendered, RelayConfig())

    assert plan.strategy == TEXT_ONLY
    assert len(plan.parts) > 1
    assert plan.parts[0].startswith("Header")
    assert not any(SEPARATOR_LINE in part for part in plan.parts)
    assert all(len(part) <= 4000 for part in plan.parts)
    assert all(part.endswith(MARKER) for part in plan.parts[:-1])


def test_plan_caption_that_fits() -> None:
    plan = plan_parts(RenderedMessage(text="caption", media=(PHOTO_ITEM,)), RelayConfig())

    assert plan.strategy == MEDIA_WITH_CAPTION
    assert plan.parts == ("caption",)
    assert plan.head_is_media


def test_plan_separate_moves_body_out_of_caption() -> None:
    body = sentences(1500)
    rendered = RenderedMessage(text=f"Server → \\#news\n{SEPARATOR_LINE}\n\n{body}", media=(PHOTO_ITEM,))

    plan = plan_parts(rendered, RelayConfig(split_strategy=SEPARATE))

    assert plan.strategy == SEPARATE
    assert plan.parts == ("Server → \\#news", body)


def test_plan_separate_keeps_linked_header_in_body() -> None:
    header = "[Server](https://discord.gg/abc) → \\#news"
    body = sentences(1500)
    rendered = RenderedMessage(text=f"{header}\n{SEPARATOR_LINE}\n\n{body}", media=(PHOTO_ITEM,))

    plan = plan_parts(rendered, RelayConfig(split_strategy=SEPARATE))

    assert plan.parts[0] == ""
    assert plan.parts[1].startswith(header)


def test_plan_unreliable_media_forces_smart_split() -> None:
    media = (MediaItem(PHOTO, "https://media.discordapp.net/attachments/1/2/p.png"),)
    rendered = RenderedMessage(text=sentences(1500), media=media)

    plan = plan_parts(rendered, RelayConfig(split_strategy=SEPARATE))

    assert plan.strategy == SMART_SPLIT
    assert len(plan.parts[0]) <= 900


def test_dispatch_failure_on_head_has_no_chain() -> None:
    transport = FakeTransport()
    transport.fail_on.add(("send_text", 0))
    dispatcher = ChainDispatcher(transport, RelayConfig())

    with pytest.raises(ChainStepError) as info:
        asyncio.run(dispatcher.dispatch("src-4", CHAT, RenderedMessage(text="Hello")))

    assert info.value.step == "send-text"
    assert info.value.index == 0
    assert info.value.new_chain is None


def test_dispatch_failure_on_tail_keeps_partial_chain() -> None:
    transport = FakeTransport()
    transport.fail_on.add(("send_text", 2))
    dispatcher = ChainDispatcher(transport, RelayConfig())

    with pytest.raises(ChainStepError) as info:
        asyncio.run(dispatcher.dispatch("src-5", CHAT, RenderedMessage(text=sentences(12000))))

    assert info.value.index == 2
    assert info.value.new_chain.message_ids == (100, 101)
    assert isinstance(info.value.__cause__, Exception)


def test_delete_chain_removes_everything_and_tolerates_missing() -> None:
    transport = FakeTransport()
    dispatcher = ChainDispatcher(transport, RelayConfig())
    media = (PHOTO_ITEM, MediaItem(PHOTO, "https://cdn.example.com/q.jpg"))
    chain = asyncio.run(dispatcher.dispatch("src-6", CHAT, RenderedMessage(text=sentences(2000), media=media)))

    failed = asyncio.run(dispatcher.delete_chain(chain))
    again = asyncio.run(dispatcher.delete_chain(chain))

    assert failed == []
    assert sorted(call[2] for call in transport.calls if call[0] == "delete_message")[:3] == [100, 101, 102]
    assert transport.live == set()
    assert again == list(chain.all_ids())


def test_planned_parts_have_no_unescaped_reserved_characters() -> None:
    text = transcode(sentences(6000))

    plan = plan_parts(RenderedMessage(text=text), RelayConfig())

    assert len(plan.parts) == 2
    for part in plan.parts:
        assert [index for index, char in enumerate(part) if char in ".()!" and not is_escaped(part, index)] == []


def test_smart_split_caption_keeps_bold_balanced() -> None:
    text = transcode("**" + "Breaking news " * 100 + "**")

    plan = plan_parts(RenderedMessage(text=text, media=(PHOTO_ITEM,)), RelayConfig())

    assert plan.strategy == SMART_SPLIT
    assert plan.parts[0].startswith("*Breaking")
    assert plan.parts[0].endswith(f"*\n\n{MARKER}")
    assert plan.parts[1].startswith("*")
    for part in plan.parts:
        assert len([index for index, char in enumerate(part) if char == "*" and not is_escaped(part, index)]) == 2
