"""Tests for library statistics."""

from datetime import datetime, timedelta, timezone

from modshelf.models import ContentItem
from modshelf.stats import compute_statistics

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _mod(mod_id, language=None, translated=None, days_ago=30):
    return ContentItem(
        id=mod_id,
        original_title="模组",
        translated_title=translated,
        language=language,
        time_updated=NOW - timedelta(days=days_ago),
    )


class TestComputeStatistics:
    def test_counts(self):
        mods = [
            _mod("1", "zh", "Mod", days_ago=1),
            _mod("2", "zh", days_ago=3),
            _mod("3", "en", days_ago=10),
            _mod("4"),
        ]
        stats = compute_statistics(mods, now=NOW)

        assert stats.total_mods == 4
        assert stats.translated_mods == 1
        assert stats.language_breakdown == {"zh": 2, "en": 1, "unknown": 1}
        assert stats.recent_updates == 2

    def test_empty(self):
        stats = compute_statistics([], now=NOW)
        assert stats.to_dict() == {
            "total_mods": 0,
            "translated_mods": 0,
            "language_breakdown": {},
            "recent_updates": 0,
        }
