"""Chain reconciliation after a source message was edited.

The old chain of length N is converged onto a new plan of M parts:

- parts that exist on both sides are edited in place, head first;
- parts beyond N are created as new text messages;
- messages beyond M are deleted afterwards as best-effort cleanup.

The head keeps the role it was created with. A caption head is always edited
as a caption, a text head always as text.
"""

from __future__ import annotations

import logging
from typing import List

from core.config import RelayConfig
from core.dispatcher import plan_parts
from core.errors import ChainStepError, TransportError
from core.models import MessageChain, RenderedMessage
from core.ports import DELETE_MESSAGE, EDIT_CAPTION, EDIT_TEXT, SEND_TEXT, TransportPort

LOGGER = logging.getLogger(__name__)


class ChainReconciler:
    def __init__(self, transport: TransportPort, config: RelayConfig) -> None:
        self._transport = transport
        self._config = config

    async def _edit(self, chain: MessageChain, index: int, part: str, disable_preview: bool) -> None:
        message_id = chain.message_ids[index]
        if index == 0 and chain.head_is_media:
            await self._transport.edit_caption(chain.chat_id, message_id, part)
            return
        await self._transport.edit_text(chain.chat_id, message_id, part, disable_preview)

    async def reconcile(self, chain: MessageChain, rendered: RenderedMessage) -> MessageChain:
        """Converge ``chain`` onto ``rendered`` and return the updated chain.

        On a failed edit or send a ChainStepError is raised whose ``new_chain``
        holds every message id that is still live and part of the chain, so
        running the reconciliation again with the same content converges.
        """

        if rendered.media and not chain.head_is_media:
            LOGGER.warning(
                "Chain %s has a text head; %s new media item(s) cannot be attached and are dropped",
                chain.source_message_id,
                len(rendered.media),
            )

        plan = plan_parts(rendered, self._config, head_is_media=chain.head_is_media)
        old_length = len(chain.message_ids)
        new_length = len(plan.parts)
        message_ids: List[int] = []

        for index, part in enumerate(plan.parts[:old_length]):
            disable_preview = plan.disable_web_page_preview if index == 0 else True
            step = EDIT_CAPTION if index == 0 and chain.head_is_media else EDIT_TEXT
            try:
                await self._edit(chain, index, part, disable_preview)
            except TransportError as exc:
                # Nothing was removed yet, so the old chain is still whole.
                raise ChainStepError(step, index, chain, chain) from exc
            message_ids.append(chain.message_ids[index])

        for index in range(old_length, new_length):
            try:
                message_id = await self._transport.send_text(chain.chat_id, plan.parts[index], True)
            except TransportError as exc:
                partial = chain.with_message_ids(tuple(message_ids))
                raise ChainStepError(SEND_TEXT, index, chain, partial) from exc
            message_ids.append(message_id)

        updated = chain.with_message_ids(tuple(message_ids))

        for message_id in chain.message_ids[new_length:]:
            try:
                await self._transport.delete_message(chain.chat_id, message_id)
            except TransportError as exc:
                LOGGER.warning(
                    "%s of surplus message %s in chain %s failed: %s",
                    DELETE_MESSAGE,
                    message_id,
                    chain.source_message_id,
                    exc,
                )

        LOGGER.info(
            "Reconciled %s: %s -> %s message(s) (%s)",
            chain.source_message_id,
            old_length,
            new_length,
            plan.strategy,
        )
        return updated
