"""Template catalog fetched from the public source and cached with stale fallback."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

import httpx
from pydantic import ValidationError

from memebot.config import Settings, settings
from memebot.http_client import (
    AsyncCircuitBreaker,
    CircuitBreakerOpenError,
    async_http_client,
    breaker_from_settings,
    request_with_retries,
)
from memebot.kv_store import KeyValueStore, make_key
from memebot.models import Catalog, CatalogEntry, CatalogPayload, Failed, Ok, Outcome, utcnow
from memebot.single_flight import SingleFlight

logger = logging.getLogger(__name__)

CATALOG_NAMESPACE = "catalog"
CATALOG_SOURCE_KEY = "imgflip"


class CatalogSource(Protocol):
    async def fetch(self) -> Outcome[tuple[CatalogEntry, ...]]: ...


def parse_catalog_payload(payload: Any) -> Outcome[tuple[CatalogEntry, ...]]:
    """Validate a catalog response body and convert it to entries.

    The envelope must match exactly; individual records that fail validation
    are skipped as long as at least one usable record remains.
    """

    try:
        envelope = CatalogPayload.model_validate(payload)
    except ValidationError as exc:
        return Failed(f"malformed catalog payload: {exc.error_count()} error(s)")
    if not envelope.success:
        return Failed("catalog source reported success=false")

    entries: list[CatalogEntry] = []
    skipped = 0
    for raw in envelope.data.memes:
        try:
            entries.append(CatalogEntry.model_validate(raw))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.warning("catalog payload: skipped %s malformed record(s)", skipped)
    if envelope.data.memes and not entries:
        return Failed("catalog payload contained no usable records")
    return Ok(tuple(entries))


class HttpCatalogSource:
    """Fetch the catalog over HTTP with retries and a dedicated breaker."""

    def __init__(
        self,
        url: str | None = None,
        *,
        settings_obj: Settings | None = None,
        circuit_breaker: AsyncCircuitBreaker | None = None,
    ) -> None:
        self._settings = settings_obj or settings
        self._url = url or self._settings.CATALOG_URL
        self._breaker = circuit_breaker or breaker_from_settings("catalog", self._settings)

    async def fetch(self) -> Outcome[tuple[CatalogEntry, ...]]:
        cfg = self._settings
        try:
            async with async_http_client(settings_obj=cfg) as client:
                response = await request_with_retries(
                    "GET",
                    self._url,
                    client=client,
                    circuit_breaker=self._breaker,
                    retries=cfg.HTTP_RETRY_ATTEMPTS,
                    backoff_factor=cfg.HTTP_RETRY_BACKOFF_INITIAL,
                    backoff_max=cfg.HTTP_RETRY_BACKOFF_MAX,
                    retry_statuses=cfg.HTTP_RETRY_STATUS_CODES,
                )
                response.raise_for_status()
                payload = response.json()
        except CircuitBreakerOpenError:
            return Failed("catalog source circuit is open")
        except httpx.HTTPError as exc:
            return Failed(f"catalog request failed: {exc.__class__.__name__}: {exc}")
        except ValueError:
            return Failed("catalog response is not valid JSON")
        return parse_catalog_payload(payload)


class CatalogCache:
    """Serve the catalog from the store, refreshing it once per TTL.

    A catalog older than ``ttl`` triggers a refresh; when the refresh fails
    the last stored catalog is returned marked as stale, and an empty
    catalog when nothing was ever stored. ``get_catalog`` never raises.
    """

    def __init__(
        self,
        store: KeyValueStore,
        source: CatalogSource,
        *,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
        retention_seconds: int | None = None,
        clock: Callable[[], datetime] = utcnow,
        single_flight: SingleFlight | None = None,
        settings_obj: Settings | None = None,
    ) -> None:
        cfg = settings_obj or settings
        self._store = store
        self._source = source
        prefix = cfg.CACHE_KEY_PREFIX if key_prefix is None else key_prefix
        self._key = make_key(prefix, CATALOG_NAMESPACE, CATALOG_SOURCE_KEY)
        self._ttl = timedelta(seconds=ttl_seconds or cfg.CATALOG_TTL_SECONDS)
        retention = retention_seconds or cfg.CATALOG_RETENTION_SECONDS
        self._retention_seconds = max(retention, int(self._ttl.total_seconds()))
        self._clock = clock
        self._flight = single_flight or SingleFlight()
        self._last_known: Catalog | None = None

    @property
    def key(self) -> str:
        return self._key

    def is_fresh(self, catalog: Catalog) -> bool:
        if catalog.fetched_at is None:
            return False
        return self._clock() - catalog.fetched_at < self._ttl

    async def get_catalog(self) -> Catalog:
        cached = await self._load()
        if cached is not None and self.is_fresh(cached):
            logger.debug("catalog cache hit entries=%s", len(cached))
            return cached
        if cached is None:
            logger.info("catalog cache miss, fetching from source")
        else:
            logger.info("catalog expired (fetched_at=%s), refreshing", cached.fetched_at)
        return await self._flight.do(self._key, lambda: self._refresh(cached))

    async def refresh(self) -> Catalog:
        """Fetch now regardless of freshness; falls back like ``get_catalog``."""

        cached = await self._load()
        return await self._flight.do(self._key, lambda: self._refresh(cached))

    async def peek(self) -> Catalog | None:
        """Stored catalog without contacting the source, marked stale once past its TTL."""

        cached = await self._load()
        if cached is None:
            return self._last_known.as_stale() if self._last_known is not None else None
        return cached if self.is_fresh(cached) else cached.as_stale()

    async def _load(self) -> Catalog | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        try:
            catalog = Catalog.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding undecodable catalog value key=%s", self._key)
            return None
        self._last_known = catalog
        return catalog

    async def _refresh(self, previous: Catalog | None) -> Catalog:
        try:
            outcome = await self._source.fetch()
        except Exception as exc:  # noqa: BLE001 - a source bug must not break lookups
            logger.exception("catalog source raised unexpectedly")
            outcome = Failed(f"unexpected error: {exc}")

        if isinstance(outcome, Ok):
            catalog = Catalog(entries=outcome.value, fetched_at=self._clock(), stale=False)
            stored = await self._store.set(self._key, catalog.model_dump_json(), self._retention_seconds)
            if not stored:
                logger.warning("catalog fetched but could not be stored key=%s", self._key)
            self._last_known = catalog
            logger.info("catalog refreshed entries=%s", len(catalog))
            return catalog

        fallback = previous or self._last_known
        if fallback is not None:
            logger.warning(
                "catalog refresh failed (%s); serving stale catalog fetched_at=%s entries=%s",
                outcome.reason,
                fallback.fetched_at,
                len(fallback),
            )
            return fallback.as_stale()

        logger.warning("catalog refresh failed (%s); no catalog available", outcome.reason)
        return Catalog.empty()


__all__ = ["CatalogCache", "CatalogSource", "HttpCatalogSource", "parse_catalog_payload"]
