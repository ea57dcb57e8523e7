"""Sync report data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class SyncReport:
    """Collects statistics about one scan run."""

    workshop_path: str = ""
    backend: str = ""
    model: str = ""

    mods_scanned: int = 0
    mods_synced: int = 0
    mods_translated: int = 0
    mods_skipped: int = 0
    cache_hits: int = 0
    cache_misses: int = 0

    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self) -> None:
        self.finished_at = datetime.now()

    def to_dict(self) -> dict:
        return {
            "workshop_path": self.workshop_path,
            "backend": self.backend,
            "model": self.model,
            "mods_scanned": self.mods_scanned,
            "mods_synced": self.mods_synced,
            "mods_translated": self.mods_translated,
            "mods_skipped": self.mods_skipped,
            "cache_hits": self.cache_hits,
            "cache_misses": self.cache_misses,
            "duration_seconds": self.duration_seconds,
            "skipped": self.skipped,
            "errors": self.errors,
        }
