"""Local workshop folder scanner."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from modshelf.errors import ScannerError

logger = logging.getLogger(__name__)


@dataclass
class ModFolderInfo:
    """What the file system knows about one mod folder."""
    exists: bool
    total_size: int = 0
    last_modified: datetime | None = None


class LocalModScanner:
    """Enumerates mod folders under a workshop content directory.

    Each immediate subdirectory is one mod; its name is the mod ID.
    """

    def __init__(self, workshop_path: str | Path | None = None) -> None:
        self._workshop_path = Path(workshop_path) if workshop_path else None

    @property
    def workshop_path(self) -> Path | None:
        return self._workshop_path

    def set_workshop_path(self, path: str | Path) -> None:
        self._workshop_path = Path(path)
        logger.info("Workshop path set to %s", self._workshop_path)

    def _root(self) -> Path:
        if self._workshop_path is None:
            raise ScannerError(
                "Workshop path not configured. Use 'modshelf config set-workshop PATH'."
            )
        return self._workshop_path

    def scan(self) -> list[str]:
        """Return the sorted IDs of all mod folders."""
        root = self._root()
        if not root.is_dir():
            raise ScannerError(f"Workshop folder not found: {root}")
        try:
            ids = sorted(
                entry.name for entry in root.iterdir()
                if entry.is_dir() and not entry.name.startswith(".")
            )
        except OSError as e:
            raise ScannerError(f"Cannot read workshop folder {root}: {e}") from e
        logger.debug("Found %d mod folders in %s", len(ids), root)
        return ids

    def mod_path(self, mod_id: str) -> Path:
        return self._root() / mod_id

    def mod_exists(self, mod_id: str) -> bool:
        return self.mod_path(mod_id).is_dir()

    def folder_info(self, mod_id: str) -> ModFolderInfo:
        path = self.mod_path(mod_id)
        if not path.is_dir():
            return ModFolderInfo(exists=False)
        total = 0
        latest = path.stat().st_mtime
        for dirpath, _dirnames, filenames in os.walk(path):
            for name in filenames:
                try:
                    stat = (Path(dirpath) / name).stat()
                except OSError:
                    continue
                total += stat.st_size
                latest = max(latest, stat.st_mtime)
        return ModFolderInfo(
            exists=True,
            total_size=total,
            last_modified=datetime.fromtimestamp(latest, tz=timezone.utc),
        )
