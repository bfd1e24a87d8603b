from __future__ import annotations

import asyncio

import pytest

from core.config import RelayConfig
from core.dispatcher import ChainDispatcher
from core.errors import ChainStepError
from core.models import PHOTO, MediaItem, MessageChain, RenderedMessage
from core.reconciler import ChainReconciler
from fakes import FakeTransport, sentences

CHAT = -1001
MARKER = "\\.\\.\\.\\(continued\\)"
PHOTO_ITEM = MediaItem(PHOTO, "https://cdn.example.com/p.jpg")


def _dispatch(transport: FakeTransport, rendered: RenderedMessage) -> MessageChain:
    return asyncio.run(ChainDispatcher(transport, RelayConfig()).dispatch("src", CHAT, rendered))


def test_shrinking_caption_chain_deletes_the_tail() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text=sentences(2000), media=(PHOTO_ITEM,)))
    transport.calls.clear()
    short = sentences(400)

    updated = asyncio.run(
        ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text=short, media=(PHOTO_ITEM,)))
    )

    assert updated.message_ids == (100,)
    assert updated.head_is_media
    assert transport.calls == [
        ("edit_caption", CHAT, 100, short),
        ("delete_message", CHAT, 101),
    ]


def test_growing_text_chain_edits_head_as_text_and_appends() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text="Hello", disable_web_page_preview=True))
    transport.calls.clear()

    updated = asyncio.run(
        ChainReconciler(transport, RelayConfig()).reconcile(
            chain, RenderedMessage(text=sentences(5000), disable_web_page_preview=True)
        )
    )

    assert updated.message_ids == (100, 101)
    assert not updated.head_is_media
    assert transport.methods() == ["edit_text", "send_text"]
    assert transport.calls[0][2] == 100
    assert transport.calls[0][3].endswith(MARKER)
    assert len(transport.calls[0][3]) <= 4000


def test_same_length_edits_in_place() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text=sentences(9000)))
    transport.calls.clear()

    updated = asyncio.run(ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text=sentences(8500))))

    assert updated.message_ids == chain.message_ids
    assert transport.methods() == ["edit_text", "edit_text", "edit_text"]
    # Only the head may show a preview.
    assert [call[4] for call in transport.calls] == [False, True, True]


def test_partial_shrink_keeps_prefix() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text=sentences(12000)))
    transport.calls.clear()

    updated = asyncio.run(ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text=sentences(6000))))

    assert updated.message_ids == chain.message_ids[:2]
    assert transport.methods() == ["edit_text", "edit_text", "delete_message", "delete_message"]


def test_text_head_never_becomes_media() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text="Hello"))
    transport.calls.clear()

    updated = asyncio.run(
        ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text="Now with a photo", media=(PHOTO_ITEM,)))
    )

    assert not updated.head_is_media
    assert transport.calls == [("edit_text", CHAT, 100, "Now with a photo", False)]


def test_media_head_keeps_caption_role_without_media() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text="pic", media=(PHOTO_ITEM,)))
    transport.calls.clear()

    asyncio.run(ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text="photo removed")))

    assert transport.calls == [("edit_caption", CHAT, 100, "photo removed")]


def test_failed_tail_edit_leaves_old_chain_whole() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text=sentences(9000)))
    transport.fail_on.add(("edit_text", 1))

    with pytest.raises(ChainStepError) as info:
        asyncio.run(ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text=sentences(6000))))

    assert info.value.step == "edit-text"
    assert info.value.index == 1
    assert info.value.old_chain == chain
    assert info.value.new_chain == chain
    # Nothing is deleted before the primary edits succeed.
    assert "delete_message" not in transport.methods()


def test_failed_append_then_retry_converges() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text="Hello"))
    transport.fail_on.add(("send_text", 2))
    target = RenderedMessage(text=sentences(12000))
    reconciler = ChainReconciler(transport, RelayConfig())

    with pytest.raises(ChainStepError) as info:
        asyncio.run(reconciler.reconcile(chain, target))

    partial = info.value.new_chain
    assert partial.message_ids == (100, 101)

    converged = asyncio.run(reconciler.reconcile(partial, target))

    assert len(converged.message_ids) == 4
    assert converged.message_ids[:2] == (100, 101)


def test_failed_surplus_delete_is_tolerated() -> None:
    transport = FakeTransport()
    chain = _dispatch(transport, RenderedMessage(text=sentences(9000)))
    transport.fail_on.add(("delete_message", 0))

    updated = asyncio.run(ChainReconciler(transport, RelayConfig()).reconcile(chain, RenderedMessage(text="tiny")))

    assert updated.message_ids == (chain.head_id,)
