from __future__ import annotations

import pytest

from memebot.models import SessionContext
from memebot.session_store import SessionContextStore

TTL = 60 * 60


def _context(session_id: str = "42", **overrides) -> SessionContext:
    payload = {
        "session_id": session_id,
        "record_name": "Two Buttons",
        "source_page_url": "https://imgflip.com/meme/Two-Buttons",
        "template_image_url": "https://i.imgflip.com/1g8my4.jpg",
        "record_id": "87743020",
    }
    payload.update(overrides)
    return SessionContext(**payload)


@pytest.fixture
def sessions(store, clock) -> SessionContextStore:
    return SessionContextStore(store, key_prefix="test", ttl_seconds=TTL, clock=clock.now)


@pytest.mark.anyio
async def test_set_then_get(sessions) -> None:
    await sessions.set_context(42, _context())
    context = await sessions.get_context(42)

    assert context is not None
    assert context.record_name == "Two Buttons"
    assert context.page_cursor == 1
    assert await sessions.get_context(7) is None


@pytest.mark.anyio
async def test_reads_slide_the_expiration(sessions, store, clock) -> None:
    await sessions.set_context("active", _context("active"))
    await sessions.set_context("control", _context("control"))

    clock.advance(600)
    assert await sessions.get_context("active") is not None
    active_after_first = await store.ttl(sessions.key("active"))
    control_after_first = await store.ttl(sessions.key("control"))
    assert active_after_first == TTL
    assert active_after_first > control_after_first

    clock.advance(600)
    assert await sessions.get_context("active") is not None
    active_after_second = await store.ttl(sessions.key("active"))
    control_after_second = await store.ttl(sessions.key("control"))
    assert active_after_second == TTL
    assert active_after_second - control_after_second > active_after_first - control_after_first


@pytest.mark.anyio
async def test_untouched_session_expires(sessions, clock) -> None:
    await sessions.set_context(1, _context("1"))
    clock.advance(TTL)
    assert await sessions.get_context(1) is None


@pytest.mark.anyio
async def test_active_session_survives_past_initial_ttl(sessions, clock) -> None:
    await sessions.set_context(1, _context("1"))
    for _ in range(3):
        clock.advance(TTL - 60)
        assert await sessions.get_context(1) is not None


@pytest.mark.anyio
async def test_delete_context(sessions) -> None:
    await sessions.set_context(9, _context("9"))
    assert await sessions.delete_context(9) is True
    assert await sessions.get_context(9) is None
    assert await sessions.delete_context(9) is False


@pytest.mark.anyio
async def test_advance_page_updates_cursor(sessions, clock) -> None:
    await sessions.set_context(5, _context("5"))
    clock.advance(30)

    context = await sessions.advance_page(5)
    assert context.page_cursor == 2
    context = await sessions.advance_page(5, step=-10)
    assert context.page_cursor == 1

    stored = await sessions.get_context(5)
    assert stored.page_cursor == 1
    assert stored.last_touched_at == clock.now()
    assert await sessions.advance_page("missing") is None


def test_page_cursor_must_be_positive() -> None:
    with pytest.raises(ValueError):
        _context(page_cursor=0)


@pytest.mark.anyio
async def test_count_active(sessions) -> None:
    await sessions.set_context(1, _context("1"))
    await sessions.set_context(2, _context("2"))
    assert await sessions.count_active() == 2


@pytest.mark.anyio
@pytest.mark.parametrize("session_id", ["", "   "])
async def test_blank_session_id_is_rejected(sessions, store, session_id) -> None:
    assert await sessions.set_context(session_id, _context()) is False
    assert await sessions.get_context(session_id) is None
    assert await sessions.delete_context(session_id) is False
    assert await sessions.advance_page(session_id) is None
    assert await store.keys("*") == []
    with pytest.raises(ValueError):
        sessions.key(session_id)
