"""Chain dispatch: the first send of a source message and whole-chain deletion.

The dispatcher turns a RenderedMessage into an ordered plan of physical
messages and then issues the transport calls strictly in order, head first.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import List, Optional, Tuple

from core.config import RelayConfig
from core.errors import ChainStepError, TransportError
from core.models import ChatId, MediaItem, MessageChain, RenderedMessage
from core.ports import DELETE_MESSAGE, SEND_MEDIA, SEND_MEDIA_GROUP, SEND_TEXT, TransportPort
from core.splitter import (
    PART_JOINER,
    extract_header,
    has_url,
    remove_separator_line,
    split_long_text,
    split_with_head,
)
from core.strategy import (
    MEDIA_WITH_CAPTION,
    SEPARATE,
    SMART_SPLIT,
    TEXT_ONLY,
    media_looks_unreliable,
    select_strategy,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DispatchPlan:
    """What one dispatch or reconcile cycle should look like on the target."""

    strategy: str
    parts: Tuple[str, ...]
    media: Tuple[MediaItem, ...]
    head_is_media: bool
    disable_web_page_preview: bool


def _separate_parts(text: str, config: RelayConfig) -> List[str]:
    header, body = extract_header(text)
    if has_url(header) or len(header) > config.caption_limit:
        # Captions holding links render poorly next to media; keep them in the body.
        body = f"{header}{PART_JOINER}{body}".strip() if header else body
        header = ""
    tail = split_long_text(body, config.text_limit, config.continuation_marker) if body else []
    return [header] + tail


def plan_parts(
    rendered: RenderedMessage,
    config: RelayConfig,
    head_is_media: Optional[bool] = None,
) -> DispatchPlan:
    """Select a strategy and cut ``rendered.text`` into chain parts.

    ``head_is_media`` pins the head role of an existing chain; when it is
    None the role follows whether the rendered message carries media.
    """

    has_media = bool(rendered.media) if head_is_media is None else head_is_media
    media = rendered.media if has_media else ()
    text = rendered.text
    strategy = select_strategy(
        has_media=has_media,
        caption_length=len(text),
        caption_limit=config.caption_limit,
        configured_mode=config.split_strategy,
        media_looks_unreliable=media_looks_unreliable(media, config.unreliable_media_patterns),
    )

    if strategy == TEXT_ONLY:
        if len(text) > config.text_limit:
            text = remove_separator_line(text)
        parts = split_long_text(text, config.text_limit, config.continuation_marker)
    elif strategy == MEDIA_WITH_CAPTION:
        parts = [text]
    elif strategy == SMART_SPLIT:
        parts = split_with_head(
            remove_separator_line(text),
            config.caption_limit,
            config.text_limit,
            config.continuation_marker,
        )
    elif strategy == SEPARATE:
        parts = _separate_parts(text, config)
    else:
        raise ValueError(f"Unhandled strategy: {strategy!r}")

    return DispatchPlan(
        strategy=strategy,
        parts=tuple(parts),
        media=tuple(media),
        head_is_media=has_media,
        disable_web_page_preview=rendered.disable_web_page_preview,
    )


class ChainDispatcher:
    """Create a new chain for a source message, or remove one entirely."""

    def __init__(self, transport: TransportPort, config: RelayConfig) -> None:
        self._transport = transport
        self._config = config

    async def _send_head(self, chat_id: ChatId, plan: DispatchPlan) -> Tuple[int, Tuple[int, ...]]:
        caption = plan.parts[0]
        if not plan.head_is_media:
            message_id = await self._transport.send_text(chat_id, caption, plan.disable_web_page_preview)
            return message_id, ()
        if len(plan.media) == 1:
            return await self._transport.send_media(chat_id, plan.media[0], caption), ()
        ids = await self._transport.send_media_group(chat_id, plan.media, caption)
        if not ids:
            raise TransportError(SEND_MEDIA_GROUP, "media group returned no messages")
        return ids[0], tuple(ids[1:])

    async def dispatch(self, source_message_id: str, chat_id: ChatId, rendered: RenderedMessage) -> MessageChain:
        """Send ``rendered`` as a new chain and return it.

        Raises ChainStepError carrying the partial chain when any send fails;
        nothing already sent is rolled back.
        """

        plan = plan_parts(rendered, self._config)
        if plan.head_is_media:
            head_step = SEND_MEDIA if len(plan.media) == 1 else SEND_MEDIA_GROUP
        else:
            head_step = SEND_TEXT

        try:
            head_id, attached_ids = await self._send_head(chat_id, plan)
        except TransportError as exc:
            raise ChainStepError(head_step, 0, None, None) from exc

        chain = MessageChain(
            source_message_id=source_message_id,
            chat_id=chat_id,
            message_ids=(head_id,),
            head_is_media=plan.head_is_media,
            attached_ids=attached_ids,
        )
        for index, part in enumerate(plan.parts[1:], start=1):
            try:
                message_id = await self._transport.send_text(chat_id, part, True)
            except TransportError as exc:
                raise ChainStepError(SEND_TEXT, index, None, chain) from exc
            chain = chain.with_message_ids(chain.message_ids + (message_id,))

        LOGGER.info(
            "Dispatched %s as %s in %s message(s)",
            source_message_id,
            plan.strategy,
            len(chain.message_ids),
        )
        return chain

    async def delete_chain(self, chain: MessageChain) -> List[int]:
        """Delete every message of ``chain``; return the ids that could not be deleted."""

        failed: List[int] = []
        for message_id in chain.all_ids():
            try:
                await self._transport.delete_message(chain.chat_id, message_id)
            except TransportError as exc:
                LOGGER.warning(
                    "%s of %s in chain %s failed: %s",
                    DELETE_MESSAGE,
                    message_id,
                    chain.source_message_id,
                    exc,
                )
                failed.append(message_id)
        LOGGER.info(
            "Deleted chain %s (%s message(s), %s failed)",
            chain.source_message_id,
            len(chain.all_ids()),
            len(failed),
        )
        return failed
