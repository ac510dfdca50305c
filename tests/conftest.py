"""Test configuration helpers."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from memebot.kv_store import MemoryStore  # noqa: E402
from memebot.models import CatalogEntry  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeClock:
    """Monotonic seconds plus a matching UTC wall clock, advanced by hand."""

    def __init__(self) -> None:
        self.seconds = 1_000.0
        self.epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> float:
        return self.seconds

    def now(self) -> datetime:
        return self.epoch + timedelta(seconds=self.seconds)

    def advance(self, seconds: float) -> None:
        self.seconds += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryStore:
    return MemoryStore(clock=clock)


def make_entry(name: str, entry_id: str | None = None, **extra) -> CatalogEntry:
    payload = {
        "id": entry_id or name.lower().replace(" ", "-"),
        "name": name,
        "url": f"https://i.imgflip.com/{(entry_id or name).replace(' ', '')}.jpg",
        "width": 500,
        "height": 500,
        "box_count": 2,
        "captions": 1000,
    }
    payload.update(extra)
    return CatalogEntry.model_validate(payload)


@pytest.fixture
def entry_factory():
    return make_entry
