from __future__ import annotations

import pytest

from memebot.models import Catalog
from memebot.resolution import (
    ResolutionEngine,
    levenshtein,
    normalize_query,
    score_name,
    validate_query,
)


@pytest.fixture
def scenario_catalog(entry_factory) -> Catalog:
    return Catalog(
        entries=(
            entry_factory("Drake Hotline Bling", "181913649"),
            entry_factory("Distracted Boyfriend", "112126428"),
        )
    )


@pytest.fixture
def engine() -> ResolutionEngine:
    return ResolutionEngine(offload_threshold=0)


def test_levenshtein_reference_fixture() -> None:
    assert levenshtein("kitten", "sitting") == 3


@pytest.mark.parametrize(
    "a, b",
    [("", ""), ("abc", "abc"), ("", "abc"), ("flaw", "lawn"), ("gumbo", "gambol"), ("this is fine", "this is fire")],
)
def test_levenshtein_identity_and_symmetry(a: str, b: str) -> None:
    assert levenshtein(a, a) == 0
    assert levenshtein(a, b) == levenshtein(b, a)


def test_levenshtein_edit_costs() -> None:
    assert levenshtein("", "abc") == 3
    assert levenshtein("abc", "abxc") == 1
    assert levenshtein("abc", "ac") == 1
    assert levenshtein("abc", "abd") == 1
    assert levenshtein("flaw", "lawn") == 2


def test_levenshtein_triangle_inequality() -> None:
    words = ["kitten", "sitting", "mitten", "knitting", ""]
    for a in words:
        for b in words:
            for c in words:
                assert levenshtein(a, c) <= levenshtein(a, b) + levenshtein(b, c)


def test_normalize_query_trims_collapses_and_casefolds() -> None:
    assert normalize_query("  Drake   HOTLINE bling ") == "drake hotline bling"


def test_exact_match_is_case_insensitive(engine, scenario_catalog) -> None:
    match = engine.best_match("drake hotline bling", scenario_catalog)
    assert match is not None
    assert match.entry.name == "Drake Hotline Bling"
    assert match.tier == "exact"
    assert match.score == 100


def test_substring_match(engine, scenario_catalog) -> None:
    match = engine.best_match("boyfriend", scenario_catalog)
    assert match is not None
    assert match.entry.name == "Distracted Boyfriend"
    assert match.tier == "substring"
    assert match.score == pytest.approx(80 + 10 * len("boyfriend") / len("distracted boyfriend"))


def test_typo_match_uses_edit_distance(engine, scenario_catalog) -> None:
    match = engine.best_match("Drake Hotlne Blng", scenario_catalog)
    assert match is not None
    assert match.entry.name == "Drake Hotline Bling"
    assert match.tier == "edit_distance"
    assert match.score == 60


def test_nonsense_query_has_no_match(engine, scenario_catalog) -> None:
    assert engine.resolve("xyz123nonsense", scenario_catalog) is None


def test_empty_query_has_no_match(engine, scenario_catalog) -> None:
    assert engine.resolve("   ", scenario_catalog) is None
    assert engine.resolve("anything", Catalog.empty()) is None


def test_every_entry_resolves_to_itself(engine, entry_factory) -> None:
    names = [
        "Drake Hotline Bling",
        "Distracted Boyfriend",
        "Two Buttons",
        "Left Exit 12 Off Ramp",
        "Running Away Balloon",
        "UNO Draw 25 Cards",
        "Bernie I Am Once Again Asking For Your Support",
        "Disaster Girl",
        "Buff Doge vs. Cheems",
        "Gru's Plan",
    ]
    catalog = Catalog(entries=tuple(entry_factory(name, str(i)) for i, name in enumerate(names)))
    for entry in catalog.entries:
        assert engine.resolve(entry.name, catalog) == entry
        assert engine.resolve(entry.name.upper(), catalog) == entry


def test_token_overlap_when_nothing_else_matches(entry_factory) -> None:
    catalog = Catalog(entries=(entry_factory("Woman Yelling At Cat"), entry_factory("Success Kid")))
    match = ResolutionEngine(offload_threshold=0).best_match("cat yelling woman", catalog)
    assert match is not None
    assert match.entry.name == "Woman Yelling At Cat"
    assert match.tier == "token_overlap"
    # woman, yelling, cat covered; "at" is too short to count
    assert match.score == pytest.approx(60.0)


def test_ties_keep_first_seen_entry(entry_factory) -> None:
    first = entry_factory("Success Kid", "1")
    second = entry_factory("Success Kid", "2")
    catalog = Catalog(entries=(first, second))
    assert ResolutionEngine(offload_threshold=0).resolve("success kid", catalog) is first
    assert ResolutionEngine(offload_threshold=0).resolve("kid", catalog) is first


def test_substring_prefers_closer_length(engine, entry_factory) -> None:
    catalog = Catalog(entries=(entry_factory("Sad Pablo Escobar Waiting"), entry_factory("Sad Pablo Escobar")))
    assert engine.resolve("pablo escobar", catalog).name == "Sad Pablo Escobar"


def test_score_name_tiers() -> None:
    assert score_name("this is fine", "this is fine") == (100.0, "exact")
    assert score_name("", "this is fine") == (0.0, None)
    score, tier = score_name("this is fire", "this is fine")
    assert tier == "edit_distance" and score == 65
    assert score_name("zzz", "this is fine") == (0.0, None)


@pytest.mark.anyio
async def test_resolve_async_offloads_large_catalogs(entry_factory, monkeypatch) -> None:
    catalog = Catalog(entries=tuple(entry_factory(f"Template {i}", str(i)) for i in range(5)))
    engine = ResolutionEngine(offload_threshold=3)

    calls: list[str] = []

    async def fake_to_thread(func, *args):
        calls.append(func.__name__)
        return func(*args)

    monkeypatch.setattr("memebot.resolution.asyncio.to_thread", fake_to_thread)
    entry = await engine.resolve_async("template 3", catalog)

    assert entry is not None and entry.id == "3"
    assert calls == ["best_match"]


@pytest.mark.anyio
async def test_resolve_async_small_catalog_stays_inline(scenario_catalog, monkeypatch) -> None:
    async def fail_to_thread(*args, **kwargs):  # pragma: no cover - must not run
        raise AssertionError("should not offload")

    monkeypatch.setattr("memebot.resolution.asyncio.to_thread", fail_to_thread)
    entry = await ResolutionEngine(offload_threshold=100).resolve_async("boyfriend", scenario_catalog)
    assert entry is not None and entry.name == "Distracted Boyfriend"


def test_validate_query_rules() -> None:
    known = ["Drake Hotline Bling", "Distracted Boyfriend", "This Is Fine"]

    assert validate_query("  ", known).reason == "empty"
    assert validate_query("x" * 51, known).reason == "too_long"
    assert validate_query("this is fine", known).is_valid

    check = validate_query("this is fire", known)
    assert not check.is_valid
    assert check.reason == "did_you_mean"
    assert check.suggestion == "This Is Fine"

    assert validate_query("Woman Yelling At Cat", known).is_valid
