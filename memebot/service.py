"""Lookup facade wiring the catalog, resolution engine and caches together."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from memebot.catalog_cache import CatalogCache, CatalogSource, HttpCatalogSource
from memebot.config import Settings, settings
from memebot.kv_store import KeyValueStore, MemoryStore, RedisStore
from memebot.models import CatalogEntry, ResolvedRecord, normalize_key
from memebot.resolution import Match, ResolutionEngine
from memebot.result_cache import ResultCache
from memebot.session_store import SessionContextStore
from memebot.single_flight import SingleFlight
from memebot.stats import CacheStats, collect_cache_stats
from memebot.suggestions import SuggestionCache
from memebot.utils_ai import OpenAITextGenerator, TextGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LookupResult:
    """Outcome of :meth:`MemeLookupService.lookup`.

    ``record`` is set on a result-cache hit; otherwise ``match`` carries the
    catalog candidate the handler should enrich. Both empty means no match.
    """

    query: str
    record: ResolvedRecord | None = None
    match: Match | None = None

    @property
    def candidate(self) -> CatalogEntry | None:
        return self.match.entry if self.match else None

    @property
    def found(self) -> bool:
        return self.record is not None or self.match is not None


class MemeLookupService:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        catalog: CatalogCache,
        engine: ResolutionEngine,
        results: ResultCache,
        sessions: SessionContextStore,
        suggestions: SuggestionCache,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.engine = engine
        self.results = results
        self.sessions = sessions
        self.suggestions = suggestions
        self._flight = SingleFlight()

    async def lookup(self, query: str) -> LookupResult:
        """Cached record first, then the best catalog candidate."""

        key = normalize_key(query)
        if not key:
            return LookupResult(query=query)
        return await self._flight.do(key, lambda: self._lookup(query))

    async def _lookup(self, query: str) -> LookupResult:
        record = await self.results.get_result(query)
        if record is not None:
            return LookupResult(query=query, record=record)

        catalog = await self.catalog.get_catalog()
        match = await self.engine.best_match_async(query, catalog)
        if match is None:
            logger.info("no catalog match for %r (catalog size=%s)", query, len(catalog))
        return LookupResult(query=query, match=match)

    async def remember_result(self, query: str, record: ResolvedRecord) -> bool:
        """Store an enriched record under the query and its canonical name."""

        stored = await self.results.cache_result(query, record)
        if normalize_key(record.canonical_name) != normalize_key(query):
            await self.results.cache_result(record.canonical_name, record)
        await self.results.cache_template_image(record.canonical_name, record.template_image_url)
        return stored

    async def stats(self) -> CacheStats:
        return await collect_cache_stats(self.store, self.sessions, self.catalog)

    async def close(self) -> None:
        await self.store.close()


def build_store(settings_obj: Settings | None = None) -> KeyValueStore:
    cfg = settings_obj or settings
    if cfg.REDIS_URL:
        return RedisStore.from_url(cfg.REDIS_URL)
    logger.warning("REDIS_URL is not set; using in-process memory store")
    return MemoryStore()


def build_service(
    settings_obj: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    catalog_source: CatalogSource | None = None,
    generator: TextGenerator | None = None,
) -> MemeLookupService:
    cfg = settings_obj or settings
    store = store or build_store(cfg)
    return MemeLookupService(
        store,
        catalog=CatalogCache(store, catalog_source or HttpCatalogSource(settings_obj=cfg), settings_obj=cfg),
        engine=ResolutionEngine(settings_obj=cfg),
        results=ResultCache(store, settings_obj=cfg),
        sessions=SessionContextStore(store, settings_obj=cfg),
        suggestions=SuggestionCache(store, generator or OpenAITextGenerator(settings_obj=cfg), settings_obj=cfg),
    )


__all__ = ["LookupResult", "MemeLookupService", "build_service", "build_store"]
