"""Core forwarding pipeline.

This module is integration-agnostic. It only relies on ports for transport
and chain storage, so the same flow serves a live listener, the CLI, and the
tests.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Dict, List, Optional, Tuple

from core.config import RelayConfig
from core.dispatcher import ChainDispatcher
from core.errors import ChainStepError
from core.models import ChatId, MessageChain, SourceContent
from core.ports import ChainStorePort, TransportPort
from core.reconciler import ChainReconciler
from core.renderer import render_message

LOGGER = logging.getLogger(__name__)


class ForwardProcessor:
    """Orchestrates rendering, dispatch, reconciliation and chain persistence."""

    def __init__(
        self,
        transport: TransportPort,
        store: ChainStorePort,
        config: RelayConfig,
        chat_id: ChatId,
    ) -> None:
        self._store = store
        self._config = config
        self._chat_id = chat_id
        self._dispatcher = ChainDispatcher(transport, config)
        self._reconciler = ChainReconciler(transport, config)
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._lock_users: Dict[Tuple[str, str], int] = {}

    @asynccontextmanager
    async def _chain_lock(self, source_message_id: str) -> AsyncIterator[None]:
        """Hold the lock of one chain; different chains run freely.

        A lock lives only while someone holds or waits for it, so every caller
        of one chain queues on the same lock and idle chains cost nothing.
        """

        key = (source_message_id, str(self._chat_id))
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def _save_partial(self, exc: ChainStepError) -> None:
        if exc.new_chain is not None:
            self._store.save_chain(exc.new_chain)

    async def handle_new(self, content: SourceContent) -> MessageChain:
        """Forward a new source message and persist its chain."""

        async with self._chain_lock(content.message_id):
            existing = self._store.get_chain(content.message_id, self._chat_id)
            if existing is not None:
                LOGGER.info("Message %s already forwarded, skipping", content.message_id)
                return existing

            rendered = render_message(content, self._config)
            try:
                chain = await self._dispatcher.dispatch(content.message_id, self._chat_id, rendered)
            except ChainStepError as exc:
                self._save_partial(exc)
                LOGGER.exception("Dispatch of %s failed at %s[%s]", content.message_id, exc.step, exc.index)
                raise
            self._store.save_chain(chain)
            return chain

    async def handle_edit(self, content: SourceContent) -> Optional[MessageChain]:
        """Reconcile the chain of an edited source message.

        Edits of messages that were never forwarded are ignored.
        """

        async with self._chain_lock(content.message_id):
            chain = self._store.get_chain(content.message_id, self._chat_id)
            if chain is None:
                LOGGER.info("No chain for edited message %s, skipping", content.message_id)
                return None

            rendered = render_message(content, self._config)
            try:
                updated = await self._reconciler.reconcile(chain, rendered)
            except ChainStepError as exc:
                self._save_partial(exc)
                LOGGER.exception("Reconcile of %s failed at %s[%s]", content.message_id, exc.step, exc.index)
                raise
            self._store.save_chain(updated)
            return updated

    async def handle_delete(self, source_message_id: str) -> List[int]:
        """Delete the whole chain; returns ids the target refused to delete."""

        async with self._chain_lock(source_message_id):
            chain = self._store.get_chain(source_message_id, self._chat_id)
            if chain is None:
                LOGGER.info("No chain for deleted message %s, skipping", source_message_id)
                return []
            failed = await self._dispatcher.delete_chain(chain)
            self._store.delete_chain(source_message_id, self._chat_id)
            return failed
