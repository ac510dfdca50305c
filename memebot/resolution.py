"""Approximate matching of free-text queries against the template catalog.

Every catalog entry is scored against the query and the strictly highest
score wins (ties keep the first entry seen). Tiers, highest first:

``exact``          casefolded equality, score 100, ends the scan.
``substring``      one string contains the other, 80 plus up to 10 for the
                   length ratio, so a closer length ranks higher.
``edit_distance``  Levenshtein distance up to 3, score 70 minus 5 per edit.
``token_overlap``  only below 70: coverage of tokens longer than two
                   characters, weighted 60 for the entry side and 40 for the
                   query side.

Comparison uses one normalization everywhere (trim, collapse whitespace,
casefold); the entry keeps its original casing for display.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from memebot.config import Settings, settings
from memebot.models import Catalog, CatalogEntry, normalize_key

logger = logging.getLogger(__name__)

EXACT_SCORE = 100.0
# 80..90: containment always outranks any typo-tolerant match
SUBSTRING_BASE_SCORE = 80.0
SUBSTRING_RATIO_WEIGHT = 10.0
EDIT_DISTANCE_BASE_SCORE = 70.0
EDIT_DISTANCE_PENALTY = 5.0
# more than 3 edits on short template names usually means a different template
EDIT_DISTANCE_THRESHOLD = 3
TOKEN_NAME_WEIGHT = 60.0
TOKEN_QUERY_WEIGHT = 40.0
# "a", "of", "is" and friends carry no signal
MIN_TOKEN_LENGTH = 3

MAX_QUERY_LENGTH = 50

TIER_EXACT = "exact"
TIER_SUBSTRING = "substring"
TIER_EDIT_DISTANCE = "edit_distance"
TIER_TOKEN_OVERLAP = "token_overlap"


def normalize_query(text: str) -> str:
    return normalize_key(text)


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit cost insertions, deletions and substitutions."""

    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current[j] = previous[j - 1]
            else:
                current[j] = 1 + min(previous[j], current[j - 1], previous[j - 1])
        previous = current
    return previous[-1]


def _tokens(text: str) -> list[str]:
    return [token for token in text.split() if len(token) >= MIN_TOKEN_LENGTH]


def _coverage(tokens: Sequence[str], others: Sequence[str]) -> float:
    if not tokens:
        return 0.0
    hits = sum(1 for token in tokens if any(token in other for other in others))
    return hits / len(tokens)


@dataclass(frozen=True, slots=True)
class Match:
    entry: CatalogEntry
    score: float
    tier: str


def score_name(query: str, name: str) -> tuple[float, str | None]:
    """Score one normalized query against one normalized entry name."""

    if not query or not name:
        return 0.0, None
    if query == name:
        return EXACT_SCORE, TIER_EXACT

    score, tier = 0.0, None
    if name in query or query in name:
        ratio = min(len(query), len(name)) / max(len(query), len(name))
        score, tier = SUBSTRING_BASE_SCORE + SUBSTRING_RATIO_WEIGHT * ratio, TIER_SUBSTRING
    # distance can never be below the length difference
    elif abs(len(query) - len(name)) <= EDIT_DISTANCE_THRESHOLD:
        distance = levenshtein(query, name)
        if distance <= EDIT_DISTANCE_THRESHOLD:
            score = EDIT_DISTANCE_BASE_SCORE - EDIT_DISTANCE_PENALTY * distance
            tier = TIER_EDIT_DISTANCE

    if score < EDIT_DISTANCE_BASE_SCORE:
        query_tokens = _tokens(query)
        name_tokens = _tokens(name)
        overlap = max(
            TOKEN_NAME_WEIGHT * _coverage(name_tokens, query_tokens),
            TOKEN_QUERY_WEIGHT * _coverage(query_tokens, name_tokens),
        )
        if overlap > score:
            score, tier = overlap, TIER_TOKEN_OVERLAP

    return score, tier


class ResolutionEngine:
    """Pick the best catalog entry for a query, or ``None`` for no match."""

    def __init__(self, *, offload_threshold: int | None = None, settings_obj: Settings | None = None) -> None:
        cfg = settings_obj or settings
        self._offload_threshold = (
            cfg.RESOLVE_OFFLOAD_THRESHOLD if offload_threshold is None else offload_threshold
        )

    def best_match(self, query: str, catalog: Catalog | Iterable[CatalogEntry]) -> Match | None:
        needle = normalize_query(query)
        if not needle:
            return None
        entries = catalog.entries if isinstance(catalog, Catalog) else catalog

        best: Match | None = None
        for entry in entries:
            score, tier = score_name(needle, normalize_query(entry.name))
            if tier is None or score <= 0:
                continue
            if best is None or score > best.score:
                best = Match(entry=entry, score=score, tier=tier)
                if score >= EXACT_SCORE:
                    break

        if best is None:
            logger.debug("no match for query=%r", query)
        else:
            logger.debug(
                "matched query=%r name=%r tier=%s score=%.1f",
                query,
                best.entry.name,
                best.tier,
                best.score,
            )
        return best

    def resolve(self, query: str, catalog: Catalog | Iterable[CatalogEntry]) -> CatalogEntry | None:
        match = self.best_match(query, catalog)
        return match.entry if match else None

    async def best_match_async(self, query: str, catalog: Catalog) -> Match | None:
        """Like :meth:`best_match`, scoring large catalogs in a worker thread."""

        if self._offload_threshold and len(catalog.entries) > self._offload_threshold:
            return await asyncio.to_thread(self.best_match, query, catalog)
        return self.best_match(query, catalog)

    async def resolve_async(self, query: str, catalog: Catalog) -> CatalogEntry | None:
        match = await self.best_match_async(query, catalog)
        return match.entry if match else None


@dataclass(frozen=True, slots=True)
class QueryCheck:
    is_valid: bool
    reason: str | None = None
    suggestion: str | None = None


def validate_query(query: str, known_names: Iterable[str] = ()) -> QueryCheck:
    """Reject unusable queries and propose a close well-known name."""

    needle = normalize_query(query)
    if not needle:
        return QueryCheck(False, reason="empty")
    if len(needle) > MAX_QUERY_LENGTH:
        return QueryCheck(False, reason="too_long")

    names = [name for name in known_names if normalize_query(name)]
    if any(normalize_query(name) == needle for name in names):
        return QueryCheck(True)

    for name in names:
        candidate = normalize_query(name)
        close = (
            needle in candidate
            or candidate in needle
            or levenshtein(needle, candidate) <= EDIT_DISTANCE_THRESHOLD
        )
        if close:
            return QueryCheck(False, reason="did_you_mean", suggestion=name)
    return QueryCheck(True)


__all__ = [
    "EDIT_DISTANCE_THRESHOLD",
    "Match",
    "QueryCheck",
    "ResolutionEngine",
    "levenshtein",
    "normalize_query",
    "score_name",
    "validate_query",
]
