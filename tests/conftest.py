"""Shared test fixtures for modshelf tests."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from modshelf.backends.base import ModelLoader, TranslatorFn
from modshelf.models import CatalogItem

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable "now" for stores and services."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeLoader(ModelLoader):
    """Loader whose model records every call.

    ``translations`` maps inputs to outputs; anything else becomes
    ``"EN:<text>"``. ``fail_load`` makes load() raise, ``fail_on`` makes the
    model raise for that input.
    """

    name = "fake"

    def __init__(
        self,
        translations: dict[str, str] | None = None,
        *,
        fail_load: bool = False,
        fail_on: set[str] | None = None,
        list_shape: bool = True,
    ) -> None:
        self.translations = translations or {}
        self.fail_load = fail_load
        self.fail_on = fail_on or set()
        self.list_shape = list_shape
        self.load_count = 0
        self.calls: list[tuple[str, dict]] = []

    def load(self, model_id: str, source_lang: str) -> TranslatorFn:
        self.load_count += 1
        if self.fail_load:
            raise OSError("model download failed")

        def _model(text: str, **options):
            self.calls.append((text, options))
            if text in self.fail_on:
                raise RuntimeError("inference crashed")
            out = self.translations.get(text, f"EN:{text}")
            if self.list_shape:
                return [{"translation_text": out}]
            return {"translation_text": out}

        return _model


def make_catalog_item(
    mod_id: str,
    title: str = "测试模组",
    description: str = "这是一个描述",
    updated: datetime | None = None,
) -> CatalogItem:
    updated = updated or datetime(2024, 5, 1, tzinfo=timezone.utc)
    return CatalogItem(
        id=mod_id,
        title=title,
        description=description,
        creator="76561198000000000",
        file_size=2048,
        subscriptions=10,
        tags=["Mod"],
        time_created=updated,
        time_updated=updated,
    )


class FakeCatalog:
    """Stand-in for SteamWorkshopClient returning canned items."""

    def __init__(self, items: dict[str, CatalogItem] | None = None) -> None:
        self.items = items or {}
        self.requests: list[list[str]] = []

    async def fetch_items(self, ids: list[str]) -> dict[str, CatalogItem]:
        self.requests.append(list(ids))
        return {i: self.items[i] for i in ids if i in self.items}

    async def fetch_item(self, mod_id: str) -> CatalogItem | None:
        return self.items.get(mod_id)

    async def validate_connection(self) -> bool:
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tmp_store(tmp_path: Path, clock: FakeClock):
    """An initialized LocalStore in a temporary directory."""
    from modshelf.storage.database import LocalStore
    store = LocalStore(tmp_path / "test_mods.db", clock=clock)
    store.initialize()
    yield store
    store.close()


@pytest.fixture
def fake_loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture
def workshop_dir(tmp_path: Path) -> Path:
    """A workshop content folder with three mod folders."""
    root = tmp_path / "workshop" / "content" / "3167020"
    for mod_id in ("1001", "1002", "1003"):
        folder = root / mod_id
        folder.mkdir(parents=True)
        (folder / "mod.json").write_text('{"id": "%s"}' % mod_id, encoding="utf-8")
    (root / "1001" / "assets").mkdir()
    (root / "1001" / "assets" / "icon.png").write_bytes(b"\x89PNG" + b"\x00" * 60)
    return root
