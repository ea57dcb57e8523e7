"""Script-range heuristics for deciding which fields need translation."""

from __future__ import annotations

import re

# CJK Unified Ideographs (basic block), same range the workshop data is checked with
_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")
_KANA_RE = re.compile(r"[\u3040-\u30ff]")
_HANGUL_RE = re.compile(r"[\uac00-\ud7af\u1100-\u11ff]")
_CYRILLIC_RE = re.compile(r"[\u0400-\u04ff]")
_LATIN_WORD_RE = re.compile(r"[a-z]+", re.IGNORECASE)

# Scripts that identify a source language, checked in order (kana before CJK
# because Japanese text mixes both)
_SCRIPT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("ja", _KANA_RE),
    ("ko", _HANGUL_RE),
    ("zh", _CJK_RE),
    ("ru", _CYRILLIC_RE),
]

# Common English words; enough signal to tag short mod titles/descriptions
_ENGLISH_WORDS: set[str] = {
    "the", "a", "an", "is", "are", "was", "be", "and", "or", "but", "not",
    "of", "in", "to", "for", "with", "on", "at", "from", "by", "this", "that",
    "it", "you", "your", "all", "more", "new", "add", "adds", "mod", "mods",
    "fix", "fixes", "version", "support", "item", "items", "map", "unit",
    "units", "weapon", "weapons", "pack", "mode", "game", "player",
}

_MIN_LENGTH = 2


def contains_cjk(text: str) -> bool:
    """True if ``text`` contains at least one CJK ideograph."""
    return bool(text) and _CJK_RE.search(text) is not None


def needs_translation(text: str | None, source_lang: str = "zh") -> bool:
    """Decide whether a field has characters in the engine's source script.

    Fields already written in the target script are passed through untouched.
    Languages without a known script fall back to "anything non-empty".
    """
    if not text or not text.strip():
        return False
    for lang, pattern in _SCRIPT_PATTERNS:
        if lang == source_lang.lower():
            return pattern.search(text) is not None
    return True


def is_english(text: str) -> bool:
    """Rough positive check for English: Latin words, some of them common."""
    stripped = text.strip()
    if len(stripped) < _MIN_LENGTH:
        return False
    if any(pattern.search(stripped) for _, pattern in _SCRIPT_PATTERNS):
        return False
    words = _LATIN_WORD_RE.findall(stripped.lower())
    if not words:
        return False
    hits = sum(1 for w in words if w in _ENGLISH_WORDS)
    # Short titles are often proper nouns ("Iron Legion"); accept plain Latin
    if len(words) <= 3:
        return True
    return hits / len(words) > 0.15


def detect_language(text: str, default: str | None = None) -> str | None:
    """Best-effort language tag from script ranges.

    Returns ``default`` when nothing conclusive is found.
    """
    if not text or not text.strip():
        return default
    for lang, pattern in _SCRIPT_PATTERNS:
        if pattern.search(text):
            return lang
    if is_english(text):
        return "en"
    return default
