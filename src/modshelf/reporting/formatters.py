"""Output formatters for sync reports."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

from modshelf.reporting.report import SyncReport


def to_json(report: SyncReport, indent: int = 2) -> str:
    return json.dumps(report.to_dict(), indent=indent, default=str, ensure_ascii=False)


def to_markdown(report: SyncReport) -> str:
    lines = [
        "# Sync Report",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Workshop folder | `{report.workshop_path}` |",
        f"| Backend | {report.backend} |",
        f"| Model | {report.model} |",
        "",
        "## Statistics",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Mods scanned | {report.mods_scanned} |",
        f"| Synced | {report.mods_synced} |",
        f"| Translated | {report.mods_translated} |",
        f"| Skipped | {report.mods_skipped} |",
        f"| Cache hits | {report.cache_hits} |",
        f"| Cache misses | {report.cache_misses} |",
        f"| Errors | {len(report.errors)} |",
        f"| Duration | {report.duration_seconds:.1f}s |",
    ]

    if report.skipped:
        lines.extend(["", "## Skipped (no catalog metadata)", ""])
        lines.extend(f"- {mod_id}" for mod_id in report.skipped)

    if report.errors:
        lines.extend(["", "## Errors", ""])
        for err in report.errors:
            lines.append(f"- {err}")

    return "\n".join(lines) + "\n"


def to_csv(report: SyncReport) -> str:
    """Format report as a single-row CSV."""
    output = io.StringIO()
    data = report.to_dict()
    # Flatten list columns
    data["skipped"] = "; ".join(data["skipped"])
    data["errors"] = "; ".join(data["errors"])
    writer = csv.DictWriter(output, fieldnames=data.keys())
    writer.writeheader()
    writer.writerow(data)
    return output.getvalue()


def save_report(report: SyncReport, path: str | Path) -> None:
    """Save report to file, picking the format from the extension (JSON by default)."""
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in (".md", ".markdown"):
        content = to_markdown(report)
    elif suffix == ".csv":
        content = to_csv(report)
    else:
        content = to_json(report)

    path.write_text(content, encoding="utf-8")
