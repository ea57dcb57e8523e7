"""Exception hierarchy shared across modshelf components."""

from __future__ import annotations


class ModShelfError(Exception):
    """Base class for errors the CLI reports without a traceback."""


class StoreError(ModShelfError):
    """The local store cannot serve the request."""


class StoreNotInitializedError(StoreError):
    def __init__(self) -> None:
        super().__init__("Database not initialized. Call initialize() first.")


class StoreClosedError(StoreError):
    def __init__(self) -> None:
        super().__init__("Database connection is closed.")


class ModelInitializationError(ModShelfError):
    """The translation model could not be loaded."""


class ScannerError(ModShelfError):
    """The workshop folder is missing or unreadable."""


class CatalogError(ModShelfError):
    """A single-item catalog request failed."""


class ExportError(ModShelfError):
    """Nothing could be exported."""
