"""Zip export of local mod folders."""

from __future__ import annotations

import logging
import os
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from modshelf.errors import ExportError
from modshelf.scanner import LocalModScanner

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    zip_path: Path
    exported_count: int
    missing_mods: list[str] = field(default_factory=list)


def export_mods(
    mod_ids: list[str],
    output_path: str | Path,
    scanner: LocalModScanner,
) -> ExportResult:
    """Write the folders of ``mod_ids`` into one zip archive.

    Each folder is stored under its mod ID. IDs without a local folder are
    reported in ``missing_mods``; ExportError is raised when none exist.
    """
    output_path = Path(output_path)
    existing: list[str] = []
    missing: list[str] = []
    for mod_id in mod_ids:
        if scanner.mod_exists(mod_id):
            existing.append(mod_id)
        else:
            missing.append(mod_id)
            logger.warning("Mod folder not found for export: %s", mod_id)

    if not existing:
        raise ExportError("No local mod folders found for export")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(
        output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
    ) as archive:
        for mod_id in existing:
            folder = scanner.mod_path(mod_id)
            archive.write(folder, arcname=mod_id)
            for dirpath, dirnames, filenames in os.walk(folder):
                dirnames.sort()
                base = Path(dirpath)
                rel = base.relative_to(folder)
                for dirname in dirnames:
                    archive.write(base / dirname, arcname=str(Path(mod_id) / rel / dirname))
                for name in sorted(filenames):
                    archive.write(base / name, arcname=str(Path(mod_id) / rel / name))

    logger.info(
        "Exported %d mods to %s (%d missing)", len(existing), output_path, len(missing)
    )
    return ExportResult(zip_path=output_path, exported_count=len(existing), missing_mods=missing)
