"""Aggregate statistics over stored mods."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from modshelf.models import ContentItem, utcnow

RECENT_UPDATE_DAYS = 7


@dataclass
class ModStatistics:
    total_mods: int = 0
    translated_mods: int = 0
    language_breakdown: dict[str, int] = field(default_factory=dict)
    recent_updates: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "total_mods": self.total_mods,
            "translated_mods": self.translated_mods,
            "language_breakdown": dict(self.language_breakdown),
            "recent_updates": self.recent_updates,
        }


def compute_statistics(
    mods: list[ContentItem], now: datetime | None = None
) -> ModStatistics:
    """Count mods, translated mods, languages and updates in the last week."""
    now = now or utcnow()
    cutoff = now - timedelta(days=RECENT_UPDATE_DAYS)
    languages = Counter(mod.language or "unknown" for mod in mods)
    return ModStatistics(
        total_mods=len(mods),
        translated_mods=sum(1 for mod in mods if mod.is_translated),
        language_breakdown=dict(languages),
        recent_updates=sum(1 for mod in mods if mod.time_updated > cutoff),
    )
