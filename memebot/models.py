"""Data model shared by the catalog, result, session and suggestion caches."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_key(text: str) -> str:
    """Return the canonical cache key form of a user supplied name."""

    return " ".join((text or "").split()).casefold()


class CatalogEntry(BaseModel):
    """One template record as published by the catalog source."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str = Field(min_length=1)
    template_image_url: str = Field(alias="url")
    width: int = 0
    height: int = 0
    text_box_count: int = Field(default=0, alias="box_count")
    usage_count: int = Field(default=0, alias="captions")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v):
        # the public API sends ids as strings, older dumps as integers
        if isinstance(v, int):
            return str(v)
        return v


class Catalog(BaseModel):
    """Ordered catalog snapshot with the moment it was fetched."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[CatalogEntry, ...] = ()
    fetched_at: datetime | None = None
    stale: bool = False

    @classmethod
    def empty(cls) -> "Catalog":
        return cls(entries=(), fetched_at=None, stale=True)

    def __len__(self) -> int:
        return len(self.entries)

    def as_stale(self) -> "Catalog":
        return self.model_copy(update={"stale": True})


class ExampleImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    alt_text: str = ""
    url: str


class ResolvedRecord(BaseModel):
    """Fully enriched lookup result produced by the bot handler."""

    model_config = ConfigDict(frozen=True)

    canonical_name: str
    source_page_url: str
    template_image_url: str
    narrative: str | None = None
    summary: str | None = None
    example_images: tuple[ExampleImage, ...] = ()
    cached_at: datetime = Field(default_factory=utcnow)


class SessionContext(BaseModel):
    """Per-chat state: the active record and the pagination cursor."""

    model_config = ConfigDict(validate_assignment=True)

    session_id: str
    record_name: str
    source_page_url: str
    template_image_url: str
    record_id: str | None = None
    page_cursor: int = Field(default=1, ge=1)
    last_touched_at: datetime = Field(default_factory=utcnow)


class SuggestionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    suggestions: tuple[str, ...] = Field(min_length=1)
    generated_at: datetime = Field(default_factory=utcnow)


# --- upstream payload schemas -------------------------------------------------


class CatalogPayloadData(BaseModel):
    memes: list[dict[str, Any]]


class CatalogPayload(BaseModel):
    """Shape of the catalog source response body."""

    success: bool
    data: CatalogPayloadData


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str


Outcome = Ok[T] | Failed


__all__ = [
    "Catalog",
    "CatalogEntry",
    "CatalogPayload",
    "ExampleImage",
    "Failed",
    "Ok",
    "Outcome",
    "ResolvedRecord",
    "SessionContext",
    "SuggestionSet",
    "normalize_key",
    "utcnow",
]
