"""Per-chat session context with sliding expiration."""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import ValidationError

from memebot.config import Settings, settings
from memebot.kv_store import KeyValueStore, make_key
from memebot.models import SessionContext, utcnow

logger = logging.getLogger(__name__)

SESSION_NAMESPACE = "session"


class SessionContextStore:
    """Store the active record and page cursor for each chat.

    Every write and every successful read re-arms the TTL, so an active chat
    keeps its context while an idle one expires after ``ttl_seconds``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
        clock: Callable = utcnow,
        settings_obj: Settings | None = None,
    ) -> None:
        cfg = settings_obj or settings
        self._store = store
        self._prefix = cfg.CACHE_KEY_PREFIX if key_prefix is None else key_prefix
        self._ttl = ttl_seconds or cfg.SESSION_TTL_SECONDS
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def key(self, session_id: str | int) -> str:
        sid = str(session_id).strip()
        if not sid:
            raise ValueError("session id must not be blank")
        return make_key(self._prefix, SESSION_NAMESPACE, sid)

    @staticmethod
    def _blank(session_id: str | int) -> bool:
        if str(session_id).strip():
            return False
        logger.warning("ignoring blank session id")
        return True

    async def set_context(self, session_id: str | int, context: SessionContext) -> bool:
        if self._blank(session_id):
            return False
        context.last_touched_at = self._clock()
        return await self._store.set(self.key(session_id), context.model_dump_json(), self._ttl)

    async def get_context(self, session_id: str | int) -> SessionContext | None:
        if self._blank(session_id):
            return None
        key = self.key(session_id)
        raw = await self._store.get(key)
        if raw is None:
            logger.debug("session miss id=%s", session_id)
            return None
        try:
            context = SessionContext.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding undecodable session key=%s", key)
            await self._store.delete(key)
            return None
        # reading counts as activity
        await self.set_context(session_id, context)
        return context

    async def delete_context(self, session_id: str | int) -> bool:
        if self._blank(session_id):
            return False
        removed = await self._store.delete(self.key(session_id))
        if removed:
            logger.info("session context cleared id=%s", session_id)
        return bool(removed)

    async def advance_page(self, session_id: str | int, step: int = 1) -> SessionContext | None:
        """Move the page cursor by *step* (never below page 1) and persist it."""

        context = await self.get_context(session_id)
        if context is None:
            return None
        context.page_cursor = max(1, context.page_cursor + step)
        await self.set_context(session_id, context)
        return context

    async def count_active(self) -> int:
        return len(await self._store.keys(self.key("*")))


__all__ = ["SessionContextStore"]
