"""Data model: mods, cached translations and catalog records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def from_timestamp(value: float | int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_timestamp(value: datetime | None) -> float | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


@dataclass
class ContentItem:
    """One mod package.

    ``original_*`` hold the catalog text, ``translated_*`` stay ``None`` until a
    translation call fills them. ``title``/``description`` resolve to the
    translated value when there is one.
    """

    id: str
    original_title: str = ""
    original_description: str = ""
    translated_title: str | None = None
    translated_description: str | None = None
    language: str | None = None
    last_translated: datetime | None = None

    creator: str = ""
    preview_url: str = ""
    file_size: int = 0
    subscriptions: int = 0
    rating: float = 0.0
    tags: list[str] = field(default_factory=list)
    time_created: datetime = field(default_factory=utcnow)
    time_updated: datetime = field(default_factory=utcnow)

    @property
    def title(self) -> str:
        return self.translated_title or self.original_title

    @property
    def description(self) -> str:
        return self.translated_description or self.original_description

    @property
    def is_translated(self) -> bool:
        return bool(self.translated_title or self.translated_description)

    def clear_translation(self) -> None:
        self.translated_title = None
        self.translated_description = None
        self.last_translated = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "original_title": self.original_title,
            "original_description": self.original_description,
            "translated_title": self.translated_title,
            "translated_description": self.translated_description,
            "language": self.language,
            "last_translated": self.last_translated.isoformat() if self.last_translated else None,
            "creator": self.creator,
            "preview_url": self.preview_url,
            "file_size": self.file_size,
            "subscriptions": self.subscriptions,
            "rating": self.rating,
            "tags": list(self.tags),
            "time_created": self.time_created.isoformat(),
            "time_updated": self.time_updated.isoformat(),
        }


@dataclass
class CachedTranslation:
    """A cached model output for one (text, source, target) triple."""

    original_text: str
    translated_text: str
    source_lang: str
    target_lang: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


@dataclass
class CatalogItem:
    """Metadata for one mod as reported by the remote catalog."""

    id: str
    title: str = ""
    description: str = ""
    creator: str = ""
    preview_url: str = ""
    file_size: int = 0
    subscriptions: int = 0
    tags: list[str] = field(default_factory=list)
    time_created: datetime = field(default_factory=utcnow)
    time_updated: datetime = field(default_factory=utcnow)
