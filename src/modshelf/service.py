"""Content sync orchestrator.

Scans the workshop folder, fetches catalog metadata for the discovered IDs,
diffs against the store and translates what changed. Also exposes the read,
statistics, refresh and export operations used by the CLI.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path

from modshelf import export
from modshelf.backends.base import ModelLoader
from modshelf.catalog import SteamWorkshopClient
from modshelf.config import Settings
from modshelf.models import CatalogItem, ContentItem, utcnow
from modshelf.scanner import LocalModScanner
from modshelf.stats import ModStatistics, compute_statistics
from modshelf.storage.database import LocalStore
from modshelf.translation.engine import TranslationEngine
from modshelf.translation.lang_detect import detect_language, needs_translation

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of one scan_and_sync() run."""
    scanned: int = 0
    synced: list[ContentItem] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    translated: int = 0


@dataclass
class RefreshResult:
    refreshed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


def _content_changed(incoming: CatalogItem, existing: ContentItem) -> bool:
    return (
        incoming.title != existing.original_title
        or incoming.description != existing.original_description
    )


class ModService:
    """Coordinates scanner, catalog, engine and store.

    Args:
        retranslate_after_days: Stored translations older than this are redone.
        missing_metadata: ``"skip"`` reports folders without catalog metadata
            in ``SyncResult.skipped``; ``"placeholder"`` stores a minimal record
            built from the folder instead.
        clock: Supplies "now" for the retranslation window.
    """

    def __init__(
        self,
        store: LocalStore,
        engine: TranslationEngine,
        scanner: LocalModScanner,
        catalog: SteamWorkshopClient,
        *,
        retranslate_after_days: int = 7,
        missing_metadata: str = "skip",
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._engine = engine
        self._scanner = scanner
        self._catalog = catalog
        self._retranslate_after = timedelta(days=retranslate_after_days)
        self._missing_metadata = missing_metadata
        self._clock = clock

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def engine(self) -> TranslationEngine:
        return self._engine

    @property
    def scanner(self) -> LocalModScanner:
        return self._scanner

    @property
    def catalog(self) -> SteamWorkshopClient:
        return self._catalog

    def close(self) -> None:
        self._store.close()

    def __enter__(self) -> ModService:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ── Sync ──

    def needs_retranslation(
        self,
        incoming: CatalogItem | ContentItem,
        existing: ContentItem | None,
        now: datetime | None = None,
    ) -> bool:
        """Whether a stored item's translation must be redone."""
        if existing is None or existing.last_translated is None:
            return True
        if incoming.time_updated > existing.last_translated:
            return True
        now = now or self._clock()
        return existing.last_translated < now - self._retranslate_after

    async def scan_and_sync(self) -> SyncResult:
        """Sync every local mod folder into the store.

        Raises ScannerError if the workshop folder cannot be read. Failures
        while processing one mod are collected in ``errors``.
        """
        result = SyncResult()
        mod_ids = await asyncio.to_thread(self._scanner.scan)
        result.scanned = len(mod_ids)
        logger.info("Found %d local mods", len(mod_ids))
        if not mod_ids:
            return result

        catalog_items = await self._catalog.fetch_items(mod_ids)
        now = self._clock()

        for mod_id in mod_ids:
            try:
                incoming = catalog_items.get(mod_id)
                placeholder = False
                if incoming is None:
                    if self._missing_metadata != "placeholder":
                        logger.warning("No catalog metadata for mod %s, skipping", mod_id)
                        result.skipped.append(mod_id)
                        continue
                    incoming = self._placeholder(mod_id, now)
                    placeholder = True

                item, translated = await self._sync_item(incoming, now, placeholder)
                self._store.upsert_mod(item)
                result.synced.append(item)
                if translated:
                    result.translated += 1
            except Exception as e:
                logger.error("Error processing mod %s: %s", mod_id, e)
                result.errors.append(f"{mod_id}: {e}")

        logger.info(
            "Sync finished: %d synced, %d translated, %d skipped, %d errors",
            len(result.synced), result.translated, len(result.skipped), len(result.errors),
        )
        return result

    def _placeholder(self, mod_id: str, now: datetime) -> CatalogItem:
        info = self._scanner.folder_info(mod_id)
        modified = info.last_modified or now
        return CatalogItem(
            id=mod_id,
            title=f"Mod {mod_id}",
            file_size=info.total_size,
            time_created=modified,
            time_updated=modified,
        )

    async def _sync_item(
        self, incoming: CatalogItem, now: datetime, placeholder: bool = False,
    ) -> tuple[ContentItem, bool]:
        existing = self._store.get_mod(incoming.id)
        if placeholder and existing is not None:
            # Keep the last known catalog record
            return existing, False

        item = ContentItem(
            id=incoming.id,
            original_title=incoming.title,
            original_description=incoming.description,
            creator=incoming.creator,
            preview_url=incoming.preview_url,
            file_size=incoming.file_size,
            subscriptions=incoming.subscriptions,
            tags=list(incoming.tags),
            time_created=incoming.time_created,
            time_updated=incoming.time_updated,
        )
        if existing is not None:
            item.rating = existing.rating
            item.language = existing.language
            if _content_changed(incoming, existing):
                logger.info("Content changed for mod %s, translation invalidated", incoming.id)
            else:
                item.translated_title = existing.translated_title
                item.translated_description = existing.translated_description
                item.last_translated = existing.last_translated

        if placeholder:
            return item, False

        stored = None if existing is None else item
        if not self.needs_retranslation(incoming, stored, now):
            logger.debug("Mod %s translation is current", incoming.id)
            return item, False

        translated = await self._apply_translation(item, now)
        return item, translated

    async def _apply_translation(self, item: ContentItem, now: datetime) -> bool:
        """Translate the fields of ``item`` that contain source-script text.

        Returns True when at least one field came back different from its
        original; only then is ``last_translated`` set. Fields that come back
        unchanged keep their previous translation.
        """
        source_lang = self._engine.source_lang
        title_needed = needs_translation(item.original_title, source_lang)
        description_needed = needs_translation(item.original_description, source_lang)

        full_text = f"{item.original_title}\n{item.original_description}"
        if not (title_needed or description_needed):
            item.language = detect_language(full_text, default=item.language)
            return False

        result = await self._engine.translate_content(
            item.original_title if title_needed else "",
            item.original_description if description_needed else "",
        )
        item.language = detect_language(full_text, default=source_lang)

        translated = False
        if title_needed and result.translated_title != item.original_title:
            item.translated_title = result.translated_title
            translated = True
        if description_needed and result.translated_description != item.original_description:
            item.translated_description = result.translated_description
            translated = True

        if not translated:
            return False
        item.last_translated = now
        return True

    async def translate_mod(self, item: ContentItem, force: bool = False) -> ContentItem:
        """Translate one stored item and persist it.

        Items that already carry a translation are returned unchanged unless
        ``force`` is set.
        """
        if item.is_translated and not force:
            return item
        item = replace(item, tags=list(item.tags))
        await self._apply_translation(item, self._clock())
        self._store.upsert_mod(item)
        return item

    async def refresh_translations(self, language: str | None = None) -> RefreshResult:
        """Force retranslation of every stored mod, optionally one language only."""
        result = RefreshResult()
        mods = self._store.list_mods(limit=max(self._store.count_mods(), 1))
        if language is not None:
            mods = [mod for mod in mods if mod.language == language]
        logger.info("Refreshing translations for %d mods", len(mods))

        for mod in mods:
            try:
                await self.translate_mod(mod, force=True)
                result.refreshed += 1
            except Exception as e:
                logger.error("Failed to refresh translation for mod %s: %s", mod.id, e)
                result.failed += 1
                result.errors.append(f"{mod.id}: {e}")
        return result

    # ── Reads ──

    def get_mod(self, mod_id: str, include_translation: bool = True) -> ContentItem | None:
        mod = self._store.get_mod(mod_id)
        if mod is None or include_translation:
            return mod
        original = replace(mod, tags=list(mod.tags))
        original.clear_translation()
        return original

    def list_mods(self, limit: int = 100, offset: int = 0) -> list[ContentItem]:
        return self._store.list_mods(limit=limit, offset=offset)

    def search_mods(self, term: str, limit: int = 50) -> list[ContentItem]:
        return self._store.search_mods(term, limit=limit)

    def get_statistics(self) -> ModStatistics:
        mods = self._store.list_mods(limit=max(self._store.count_mods(), 1))
        return compute_statistics(mods, now=self._clock())

    def export_mods(self, mod_ids: list[str], output_path: str | Path) -> export.ExportResult:
        return export.export_mods(mod_ids, output_path, self._scanner)


# ── Wiring ──


def create_loader(settings: Settings, *, dummy: bool = False) -> ModelLoader:
    """Create the model loader named by ``settings.backend``."""
    backend = "dummy" if dummy else settings.backend
    if backend == "dummy":
        from modshelf.backends.dummy import DummyLoader
        return DummyLoader(target_lang=settings.target_lang)
    elif backend == "ctranslate2":
        from modshelf.backends.opus_mt import CTranslate2Loader
        return CTranslate2Loader(models_dir=settings.models_dir, device=settings.device)
    else:
        from modshelf.backends.transformers_pipeline import TransformersPipelineLoader
        return TransformersPipelineLoader(models_dir=settings.models_dir, device=settings.device)


def build_service(
    settings: Settings,
    *,
    loader: ModelLoader | None = None,
    catalog: SteamWorkshopClient | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> ModService:
    """Open the store and assemble a ModService from ``settings``.

    The caller owns the returned service and must close() it.
    """
    if settings.db_path is None:
        raise ValueError("Settings.db_path is not set")
    loader = loader or create_loader(settings)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    store = LocalStore(
        settings.db_path,
        translation_ttl_days=settings.translation_cache_ttl_days,
        clock=clock,
    )
    store.initialize()

    engine = TranslationEngine(
        store,
        loader,
        model_id=settings.model_id,
        source_lang=settings.source_lang,
        target_lang=settings.target_lang,
        cache_ttl_days=settings.translation_cache_ttl_days,
        max_length=settings.max_length,
        num_beams=settings.num_beams,
        batch_group_size=settings.batch_group_size,
    )
    catalog = catalog or SteamWorkshopClient(
        batch_size=settings.catalog_batch_size,
        batch_delay=settings.catalog_batch_delay,
        timeout=settings.catalog_timeout,
    )
    return ModService(
        store,
        engine,
        LocalModScanner(settings.workshop_path or None),
        catalog,
        retranslate_after_days=settings.retranslate_after_days,
        missing_metadata=settings.missing_metadata,
        clock=clock,
    )
