"""Cache health snapshot for status commands."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from memebot.catalog_cache import CatalogCache
from memebot.kv_store import KeyValueStore
from memebot.session_store import SessionContextStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheStats:
    connected: bool
    active_sessions: int
    catalog_entries: int
    catalog_stale: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def collect_cache_stats(
    store: KeyValueStore,
    sessions: SessionContextStore,
    catalog_cache: CatalogCache | None = None,
) -> CacheStats:
    connected = await store.ping()
    error = getattr(store, "last_error", None) if not connected else None
    if not connected:
        logger.warning("cache backend unreachable: %s", error)
        return CacheStats(
            connected=False,
            active_sessions=0,
            catalog_entries=0,
            catalog_stale=True,
            error=error or "backend unreachable",
        )

    active = await sessions.count_active()
    entries, stale = 0, True
    if catalog_cache is not None:
        # stored copy only: a status call must not trigger an upstream fetch
        catalog = await catalog_cache.peek()
        if catalog is not None:
            entries, stale = len(catalog), catalog.stale
    return CacheStats(
        connected=True,
        active_sessions=active,
        catalog_entries=entries,
        catalog_stale=stale,
    )


__all__ = ["CacheStats", "collect_cache_stats"]
