"""SQLite store for mods and the translation cache."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from modshelf.errors import StoreClosedError, StoreNotInitializedError
from modshelf.models import (
    CachedTranslation,
    ContentItem,
    from_timestamp,
    to_timestamp,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_TRANSLATION_TTL_DAYS = 30

_SCHEMA = """
CREATE TABLE IF NOT EXISTS mods (
    id TEXT PRIMARY KEY,
    original_title TEXT NOT NULL DEFAULT '',
    original_description TEXT NOT NULL DEFAULT '',
    translated_title TEXT,
    translated_description TEXT,
    language TEXT,
    last_translated REAL,
    creator TEXT,
    preview_url TEXT,
    file_size INTEGER,
    subscriptions INTEGER,
    rating REAL,
    tags TEXT,
    time_created REAL,
    time_updated REAL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS translations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_text TEXT NOT NULL,
    translated_text TEXT NOT NULL,
    source_lang TEXT NOT NULL,
    target_lang TEXT NOT NULL,
    created_at REAL NOT NULL,
    expires_at REAL NOT NULL,
    UNIQUE (original_text, source_lang, target_lang)
);

CREATE INDEX IF NOT EXISTS idx_mods_updated ON mods(time_updated);
CREATE INDEX IF NOT EXISTS idx_mods_creator ON mods(creator);
CREATE INDEX IF NOT EXISTS idx_translations_lookup
    ON translations(original_text, source_lang, target_lang);
CREATE INDEX IF NOT EXISTS idx_translations_expires ON translations(expires_at);
"""

_MOD_COLUMNS = (
    "id", "original_title", "original_description", "translated_title",
    "translated_description", "language", "last_translated", "creator",
    "preview_url", "file_size", "subscriptions", "rating", "tags",
    "time_created", "time_updated",
)


class LocalStore:
    """Single long-lived SQLite connection shared by all components.

    ``initialize()`` opens the file and creates the schema; every other
    operation fails fast before that and after ``close()``. ``clock`` supplies
    "now" for expiry checks and timestamps.
    """

    def __init__(
        self,
        db_path: str | Path,
        translation_ttl_days: int = DEFAULT_TRANSLATION_TTL_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db_path = Path(db_path)
        self._ttl_days = translation_ttl_days
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._closed = False

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def translation_ttl_days(self) -> int:
        return self._ttl_days

    def initialize(self) -> None:
        if self._conn is not None:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self._db_path))
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except sqlite3.Error:
            logger.error("Failed to open database at %s", self._db_path)
            raise
        self._conn = conn
        self._closed = False
        logger.info("Connected to SQLite database at %s", self._db_path)

    def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        self._closed = True
        logger.info("Database connection closed")

    def __enter__(self) -> LocalStore:
        self.initialize()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._closed:
                raise StoreClosedError()
            raise StoreNotInitializedError()
        return self._conn

    # ── Mods ──

    def upsert_mod(self, mod: ContentItem) -> None:
        """Insert or replace a mod by id."""
        conn = self._connection()
        placeholders = ", ".join("?" for _ in _MOD_COLUMNS)
        conn.execute(
            f"INSERT OR REPLACE INTO mods ({', '.join(_MOD_COLUMNS)}, updated_at) "
            f"VALUES ({placeholders}, CURRENT_TIMESTAMP)",
            (
                mod.id,
                mod.original_title,
                mod.original_description,
                mod.translated_title,
                mod.translated_description,
                mod.language,
                to_timestamp(mod.last_translated),
                mod.creator,
                mod.preview_url,
                mod.file_size,
                mod.subscriptions,
                mod.rating,
                json.dumps(mod.tags, ensure_ascii=False),
                to_timestamp(mod.time_created),
                to_timestamp(mod.time_updated),
            ),
        )
        conn.commit()

    def get_mod(self, mod_id: str) -> ContentItem | None:
        row = self._connection().execute(
            "SELECT * FROM mods WHERE id = ?", (mod_id,)
        ).fetchone()
        return _row_to_mod(row) if row else None

    def list_mods(self, limit: int = 100, offset: int = 0) -> list[ContentItem]:
        cursor = self._connection().execute(
            "SELECT * FROM mods ORDER BY time_updated DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_mod(row) for row in cursor.fetchall()]

    def search_mods(self, term: str, limit: int = 50) -> list[ContentItem]:
        """Substring match over original and translated title/description."""
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        cursor = self._connection().execute(
            "SELECT * FROM mods "
            "WHERE original_title LIKE ? ESCAPE '\\' OR original_description LIKE ? ESCAPE '\\' "
            "OR translated_title LIKE ? ESCAPE '\\' "
            "OR translated_description LIKE ? ESCAPE '\\' "
            "ORDER BY time_updated DESC LIMIT ?",
            (pattern, pattern, pattern, pattern, limit),
        )
        return [_row_to_mod(row) for row in cursor.fetchall()]

    def count_mods(self) -> int:
        cursor = self._connection().execute("SELECT COUNT(*) FROM mods")
        return cursor.fetchone()[0]  # type: ignore[no-any-return]

    # ── Translation cache ──

    def get_translation(
        self, original_text: str, source_lang: str, target_lang: str,
    ) -> CachedTranslation | None:
        """Return the cached translation, or None if absent or expired."""
        row = self._connection().execute(
            "SELECT * FROM translations "
            "WHERE original_text = ? AND source_lang = ? AND target_lang = ? "
            "AND expires_at > ?",
            (original_text, source_lang, target_lang, self._now()),
        ).fetchone()
        if row is None:
            return None
        return CachedTranslation(
            original_text=row["original_text"],
            translated_text=row["translated_text"],
            source_lang=row["source_lang"],
            target_lang=row["target_lang"],
            created_at=from_timestamp(row["created_at"]),  # type: ignore[arg-type]
            expires_at=from_timestamp(row["expires_at"]),  # type: ignore[arg-type]
        )

    def save_translation(
        self,
        original_text: str,
        translated_text: str,
        source_lang: str,
        target_lang: str,
        ttl_days: int | None = None,
    ) -> None:
        """Upsert on (original_text, source_lang, target_lang); resets expiry."""
        conn = self._connection()
        now = self._clock()
        expires = now + timedelta(days=ttl_days if ttl_days is not None else self._ttl_days)
        conn.execute(
            "INSERT OR REPLACE INTO translations "
            "(original_text, translated_text, source_lang, target_lang, created_at, expires_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                original_text, translated_text, source_lang, target_lang,
                to_timestamp(now), to_timestamp(expires),
            ),
        )
        conn.commit()

    def count_translations(self) -> int:
        """Number of non-expired cached translations."""
        cursor = self._connection().execute(
            "SELECT COUNT(*) FROM translations WHERE expires_at > ?", (self._now(),)
        )
        return cursor.fetchone()[0]  # type: ignore[no-any-return]

    def clear_expired_translations(self) -> int:
        """Delete rows past their expiry. Returns number of rows deleted."""
        conn = self._connection()
        cursor = conn.execute(
            "DELETE FROM translations WHERE expires_at <= ?", (self._now(),)
        )
        conn.commit()
        return cursor.rowcount

    def clear_all_translations(self) -> int:
        """Delete every cached translation, expired or not."""
        conn = self._connection()
        cursor = conn.execute("DELETE FROM translations")
        conn.commit()
        logger.warning(
            "Cleared all translations from cache: %d entries deleted", cursor.rowcount
        )
        return cursor.rowcount

    def _now(self) -> float:
        return to_timestamp(self._clock())  # type: ignore[return-value]


def _row_to_mod(row: sqlite3.Row) -> ContentItem:
    return ContentItem(
        id=row["id"],
        original_title=row["original_title"] or "",
        original_description=row["original_description"] or "",
        translated_title=row["translated_title"],
        translated_description=row["translated_description"],
        language=row["language"],
        last_translated=from_timestamp(row["last_translated"]),
        creator=row["creator"] or "",
        preview_url=row["preview_url"] or "",
        file_size=row["file_size"] or 0,
        subscriptions=row["subscriptions"] or 0,
        rating=row["rating"] or 0.0,
        tags=json.loads(row["tags"] or "[]"),
        time_created=from_timestamp(row["time_created"]),  # type: ignore[arg-type]
        time_updated=from_timestamp(row["time_updated"]),  # type: ignore[arg-type]
    )
