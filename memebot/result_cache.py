"""Cache of fully resolved records plus a long-lived template image namespace."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from memebot.config import Settings, settings
from memebot.kv_store import KeyValueStore, make_key
from memebot.models import ResolvedRecord, normalize_key

logger = logging.getLogger(__name__)

RESULT_NAMESPACE = "result"
TEMPLATE_NAMESPACE = "template"


class ResultCache:
    """Key-value cache of :class:`ResolvedRecord` keyed by normalized query.

    Narrative text is regenerated every ``ttl_seconds`` (12h by default); the
    bare template image URL lives in its own namespace for a week because
    templates almost never change.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
        image_ttl_seconds: int | None = None,
        settings_obj: Settings | None = None,
    ) -> None:
        cfg = settings_obj or settings
        self._store = store
        self._prefix = cfg.CACHE_KEY_PREFIX if key_prefix is None else key_prefix
        self._ttl = ttl_seconds or cfg.RESULT_TTL_SECONDS
        self._image_ttl = image_ttl_seconds or cfg.TEMPLATE_IMAGE_TTL_SECONDS

    def result_key(self, key: str) -> str:
        return make_key(self._prefix, RESULT_NAMESPACE, normalize_key(key))

    def template_key(self, key: str) -> str:
        return make_key(self._prefix, TEMPLATE_NAMESPACE, normalize_key(key))

    async def cache_result(self, key: str, record: ResolvedRecord, ttl: int | None = None) -> bool:
        if not normalize_key(key):
            return False
        stored = await self._store.set(self.result_key(key), record.model_dump_json(), ttl or self._ttl)
        if stored:
            logger.debug("cached result key=%r ttl=%s", normalize_key(key), ttl or self._ttl)
        return stored

    async def get_result(self, key: str) -> ResolvedRecord | None:
        if not normalize_key(key):
            return None
        redis_key = self.result_key(key)
        raw = await self._store.get(redis_key)
        if raw is None:
            logger.debug("result cache miss key=%r", normalize_key(key))
            return None
        try:
            record = ResolvedRecord.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding undecodable result key=%s", redis_key)
            await self._store.delete(redis_key)
            return None
        logger.debug("result cache hit key=%r", normalize_key(key))
        return record

    async def cache_template_image(self, key: str, url: str, ttl: int | None = None) -> bool:
        if not normalize_key(key) or not url:
            return False
        return await self._store.set(self.template_key(key), url, ttl or self._image_ttl)

    async def get_template_image(self, key: str) -> str | None:
        """Return the template image URL, consulting the full record as a fallback."""

        if not normalize_key(key):
            return None
        url = await self._store.get(self.template_key(key))
        if url:
            return url
        record = await self.get_result(key)
        return record.template_image_url if record else None

    async def invalidate(self, key: str) -> int:
        removed = await self._store.delete(self.result_key(key))
        removed += await self._store.delete(self.template_key(key))
        return removed


__all__ = ["ResultCache"]
