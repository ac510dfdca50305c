"""Rotating list of suggested template names shown to idle users."""

from __future__ import annotations

import logging
import random
import re
from typing import Sequence

from pydantic import ValidationError

from memebot.config import Settings, settings
from memebot.kv_store import KeyValueStore, make_key
from memebot.models import Failed, Ok, Outcome, SuggestionSet
from memebot.single_flight import SingleFlight
from memebot.utils_ai import TextGenerationError, TextGenerator

logger = logging.getLogger(__name__)

SUGGESTIONS_NAMESPACE = "suggestions"
SUGGESTION_COUNT = 5
MIN_SUGGESTIONS = 3
MAX_SUGGESTION_LENGTH = 60

FALLBACK_SUGGESTIONS: tuple[str, ...] = (
    "Drake Hotline Bling",
    "Distracted Boyfriend",
    "This Is Fine",
    "Expanding Brain",
    "Two Buttons",
    "Chill Guy",
    "Epic Handshake",
    "Woman Yelling At Cat",
    "Hide the Pain Harold",
    "Surprised Pikachu",
    "Change My Mind",
    "One Does Not Simply",
    "Ancient Aliens",
    "Success Kid",
    "Bad Luck Brian",
    "Good Guy Greg",
    "Scumbag Steve",
    "First World Problems",
    "Confession Bear",
    "Socially Awkward Penguin",
)

SUGGESTIONS_PROMPT = f"""Provide exactly {SUGGESTION_COUNT} random popular meme names that can be found on imgflip.com.

Requirements:
- Must be actual popular internet memes
- Should be searchable on imgflip.com
- Return ONLY the meme names, one per line
- No numbering, bullets, or extra text
- Examples of format:
Drake hotline bling
Distracted Boyfriend
This is Fine

Give me {SUGGESTION_COUNT} different popular memes:"""

_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")


def parse_suggestions(text: str) -> Outcome[tuple[str, ...]]:
    """Turn a generated reply into up to five usable names."""

    if not isinstance(text, str):
        return Failed("generator returned a non-text reply")
    names: list[str] = []
    for line in text.splitlines():
        name = _LIST_MARKER_RE.sub("", line).strip().strip("\"'")
        if not name or len(name) > MAX_SUGGESTION_LENGTH:
            continue
        if name.casefold() in {existing.casefold() for existing in names}:
            continue
        names.append(name)
        if len(names) == SUGGESTION_COUNT:
            break
    if len(names) < MIN_SUGGESTIONS:
        return Failed(f"only {len(names)} usable line(s) in generated reply")
    return Ok(tuple(names))


class SuggestionCache:
    """Serve generated suggestions, falling back to a static shortlist.

    The fallback is never cached so that the next call tries generation again.
    """

    def __init__(
        self,
        store: KeyValueStore,
        generator: TextGenerator,
        *,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
        fallback: Sequence[str] = FALLBACK_SUGGESTIONS,
        rng: random.Random | None = None,
        single_flight: SingleFlight | None = None,
        settings_obj: Settings | None = None,
    ) -> None:
        cfg = settings_obj or settings
        self._store = store
        self._generator = generator
        prefix = cfg.CACHE_KEY_PREFIX if key_prefix is None else key_prefix
        self._key = make_key(prefix, SUGGESTIONS_NAMESPACE, "popular")
        self._ttl = ttl_seconds or cfg.SUGGESTIONS_TTL_SECONDS
        self._fallback = tuple(fallback)
        self._rng = rng or random.Random()
        self._flight = single_flight or SingleFlight()

    @property
    def key(self) -> str:
        return self._key

    async def get_suggestions(self) -> list[str]:
        cached = await self._load()
        if cached is not None:
            logger.debug("suggestions cache hit")
            return list(cached.suggestions)
        # joined callers share one result object; hand each caller its own list
        return list(await self._flight.do(self._key, self._generate))

    def fallback_sample(self) -> list[str]:
        count = min(SUGGESTION_COUNT, len(self._fallback))
        return self._rng.sample(list(self._fallback), count)

    async def _load(self) -> SuggestionSet | None:
        raw = await self._store.get(self._key)
        if raw is None:
            return None
        try:
            return SuggestionSet.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding undecodable suggestions key=%s", self._key)
            return None

    async def _generate(self) -> list[str]:
        logger.info("generating new suggestions")
        try:
            reply = await self._generator.generate(SUGGESTIONS_PROMPT)
        except TextGenerationError as exc:
            logger.warning("suggestion generation failed: %s; using fallback list", exc)
            return self.fallback_sample()
        except Exception:  # noqa: BLE001 - any generator bug degrades to the fallback
            logger.exception("suggestion generator raised unexpectedly; using fallback list")
            return self.fallback_sample()

        outcome = parse_suggestions(reply)
        if isinstance(outcome, Failed):
            logger.warning("rejected generated suggestions: %s; using fallback list", outcome.reason)
            return self.fallback_sample()

        suggestion_set = SuggestionSet(suggestions=outcome.value)
        await self._store.set(self._key, suggestion_set.model_dump_json(), self._ttl)
        logger.info("generated suggestions %s", list(outcome.value))
        return list(outcome.value)


__all__ = ["FALLBACK_SUGGESTIONS", "SuggestionCache", "parse_suggestions"]
