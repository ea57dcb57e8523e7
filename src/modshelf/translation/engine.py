"""Cache-first translation engine wrapping a lazily loaded model.

The engine owns one model loader and one translation direction. The model is
only loaded on the first cache miss; concurrent misses while it loads await the
same pending task, so the model is never loaded twice. Pure cache hits never
touch the model or the initialization state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum

from modshelf.backends.base import ModelLoader, TranslatorFn, extract_translation_text
from modshelf.errors import ModelInitializationError
from modshelf.storage.database import LocalStore
from modshelf.translation.lang_detect import detect_language

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "Helsinki-NLP/opus-mt-zh-en"
DEFAULT_MAX_LENGTH = 512
DEFAULT_NUM_BEAMS = 4
DEFAULT_BATCH_GROUP_SIZE = 5

# Probe used by validate_configuration()
_PROBE_TEXT = "你好"

_LANGUAGE_NAMES = {
    "zh": "Chinese",
    "en": "English",
    "ja": "Japanese",
    "ko": "Korean",
    "ru": "Russian",
}


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass
class TranslationStats:
    """In-memory counters for one engine instance. Never persisted."""

    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    model_load_seconds: float = 0.0

    @property
    def hit_rate(self) -> int:
        """Hits as a rounded percentage of requests (0 when there were none)."""
        if self.total_requests == 0:
            return 0
        return int(self.cache_hits * 100 / self.total_requests + 0.5)

    def reset(self) -> None:
        self.total_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0


@dataclass
class CacheStats:
    cached: int
    total: int
    hit_rate: int
    model_load_seconds: float

    def to_dict(self) -> dict[str, object]:
        return {
            "cached": self.cached,
            "total": self.total,
            "hit_rate": self.hit_rate,
            "model_load_seconds": self.model_load_seconds,
        }


@dataclass
class ContentTranslation:
    translated_title: str
    translated_description: str
    detected_language: str | None


@dataclass
class ValidationResult:
    valid: bool
    message: str


@dataclass
class ModelInfo:
    name: str
    loader: str
    source: str
    target: str
    ready: bool


class TranslationEngine:
    """Translates ``source_lang`` text to ``target_lang`` with a persistent cache.

    Args:
        store: Initialized LocalStore holding the translations table.
        loader: Model loader; ``load()`` is called at most once per successful
            initialization.
        model_id: Identifier handed to the loader.
        cache_ttl_days: Expiry for new cache rows; None uses the store default.
        batch_group_size: Concurrency group size for translate_batch().
    """

    def __init__(
        self,
        store: LocalStore,
        loader: ModelLoader,
        *,
        model_id: str = DEFAULT_MODEL_ID,
        source_lang: str = "zh",
        target_lang: str = "en",
        cache_ttl_days: int | None = None,
        max_length: int = DEFAULT_MAX_LENGTH,
        num_beams: int = DEFAULT_NUM_BEAMS,
        batch_group_size: int = DEFAULT_BATCH_GROUP_SIZE,
    ) -> None:
        if batch_group_size < 1:
            raise ValueError("batch_group_size must be at least 1")
        self._store = store
        self._loader = loader
        self.model_id = model_id
        self.source_lang = source_lang
        self.target_lang = target_lang
        self._cache_ttl_days = cache_ttl_days
        self._max_length = max_length
        self._num_beams = num_beams
        self._batch_group_size = batch_group_size

        self.stats = TranslationStats()
        self._translator: TranslatorFn | None = None
        self._pending: asyncio.Task[TranslatorFn] | None = None
        self._state = EngineState.UNINITIALIZED
        self.last_error: BaseException | None = None

    # ── Lifecycle ──

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._translator is not None

    async def initialize(self) -> None:
        """Load the model unless it is already loaded or loading.

        Idempotent. Callers arriving while a load is in flight await the same
        task. A failed load raises ModelInitializationError to every waiter
        and leaves the engine ready to retry on the next call.
        """
        if self._translator is not None:
            return

        if self._pending is None:
            # Set before the first await so concurrent callers see it
            self._state = EngineState.INITIALIZING
            self._pending = asyncio.ensure_future(self._load_model())
            self._pending.add_done_callback(self._clear_pending)
        else:
            logger.debug("Waiting for ongoing model initialization...")

        await asyncio.shield(self._pending)

    def _clear_pending(self, task: asyncio.Task[TranslatorFn]) -> None:
        self._pending = None

    async def _load_model(self) -> TranslatorFn:
        start = time.monotonic()
        logger.info("Loading offline translation model (%s)...", self.model_id)
        try:
            translator = await asyncio.to_thread(
                self._loader.load, self.model_id, self.source_lang
            )
        except Exception as e:
            self._state = EngineState.FAILED
            self.last_error = e
            logger.error("Failed to load translation model %s: %s", self.model_id, e)
            raise ModelInitializationError(
                f"Translation model initialization failed: {e}"
            ) from e

        self.stats.model_load_seconds = time.monotonic() - start
        self._translator = translator
        self._state = EngineState.READY
        self.last_error = None
        logger.info(
            "Translation model loaded in %.2fs", self.stats.model_load_seconds
        )
        return translator

    # ── Translation ──

    async def translate(self, text: str) -> str:
        """Translate one text, cache first.

        Empty/whitespace input is returned as is. A model error during the
        call returns the input unchanged; a failed model load raises
        ModelInitializationError. Store errors propagate.
        """
        if not text or not text.strip():
            return text

        self.stats.total_requests += 1

        cached = self._store.get_translation(text, self.source_lang, self.target_lang)
        if cached is not None and cached.translated_text:
            self.stats.cache_hits += 1
            logger.debug("Translation cache hit: %.50s", text)
            return cached.translated_text

        self.stats.cache_misses += 1

        await self.initialize()
        translator = self._translator
        if translator is None:
            raise ModelInitializationError("Translation model not initialized")

        logger.debug("Translating %d chars: %.50s", len(text), text)
        start = time.monotonic()
        try:
            result = await asyncio.to_thread(
                translator,
                text,
                max_length=self._max_length,
                num_beams=self._num_beams,
                early_stopping=True,
            )
        except Exception as e:
            logger.error("Translation failed for text %.50s: %s", text, e)
            return text

        translated = extract_translation_text(result)
        if translated is None:
            logger.warning("Model returned no translation for %.50s", text)
            return text

        logger.debug(
            "Translation completed in %.0fms: %.50s",
            (time.monotonic() - start) * 1000, translated,
        )
        self._store.save_translation(
            text, translated, self.source_lang, self.target_lang,
            ttl_days=self._cache_ttl_days,
        )
        return translated

    async def translate_batch(self, texts: list[str]) -> list[str]:
        """Translate texts in fixed-size concurrent groups, preserving order."""
        if not texts:
            return []

        size = self._batch_group_size
        total_groups = (len(texts) + size - 1) // size
        logger.info("Batch translating %d texts...", len(texts))

        results: list[str] = []
        for i in range(0, len(texts), size):
            group = texts[i : i + size]
            results.extend(await asyncio.gather(*(self.translate(t) for t in group)))
            logger.debug("Processed batch %d/%d", i // size + 1, total_groups)
        return results

    async def translate_content(self, title: str, description: str) -> ContentTranslation:
        """Translate a mod's title and description.

        Both fields are translated as given. On any failure the originals are
        returned unchanged (never a partial result).
        """
        detected = detect_language(f"{title}\n{description}", default=self.source_lang)
        try:
            translated_title, translated_description = await asyncio.gather(
                self.translate(title), self.translate(description)
            )
        except Exception as e:
            logger.error("Mod content translation failed: %s", e)
            return ContentTranslation(title, description, detected)
        return ContentTranslation(translated_title, translated_description, detected)

    # ── Cache maintenance ──

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            cached=self._store.count_translations(),
            total=self.stats.total_requests,
            hit_rate=self.stats.hit_rate,
            model_load_seconds=self.stats.model_load_seconds,
        )

    def clear_expired_cache(self) -> int:
        """Routine maintenance: remove expired cache rows only."""
        count = self._store.clear_expired_translations()
        logger.info("Cleared %d expired translations from cache", count)
        self.stats.reset()
        return count

    def clear_all_cache(self) -> int:
        """Remove every cache row. Only for an explicit user request."""
        count = self._store.clear_all_translations()
        self.stats.reset()
        return count

    # ── Introspection ──

    async def validate_configuration(self) -> ValidationResult:
        """Load the model and run a probe translation; never raises."""
        try:
            await self.initialize()
            translator = self._translator
            if translator is None:
                return ValidationResult(False, "Translation model failed to initialize")
            result = await asyncio.to_thread(
                translator, _PROBE_TEXT, max_length=128, num_beams=2, early_stopping=True,
            )
        except Exception as e:
            logger.error("Translation validation failed: %s", e)
            return ValidationResult(False, f"Translation validation failed: {e}")

        probe = extract_translation_text(result)
        if not probe:
            return ValidationResult(False, "Translation model test failed - no output")
        logger.info('Translation model validated. Test: "%s" -> "%s"', _PROBE_TEXT, probe)
        return ValidationResult(True, f'Offline translation is ready ("{_PROBE_TEXT}" -> "{probe}")')

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            name=self.model_id,
            loader=self._loader.describe(self.model_id),
            source=_LANGUAGE_NAMES.get(self.source_lang, self.source_lang),
            target=_LANGUAGE_NAMES.get(self.target_lang, self.target_lang),
            ready=self.is_ready,
        )
