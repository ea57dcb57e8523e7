"""Application settings: defaults, settings.json and environment overrides."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".modshelf"
SETTINGS_FILENAME = "settings.json"

DEFAULT_MODEL_ID = "Helsinki-NLP/opus-mt-zh-en"

# Loader names accepted by --backend / MODSHELF_BACKEND
BACKENDS = ("transformers", "ctranslate2", "dummy")
MISSING_METADATA_POLICIES = ("skip", "placeholder")

# env var → (field name, converter)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "MODSHELF_DB_PATH": ("db_path", Path),
    "MODSHELF_WORKSHOP_PATH": ("workshop_path", str),
    "TRANSLATION_CACHE_TTL_DAYS": ("translation_cache_ttl_days", int),
    "MODSHELF_RETRANSLATE_AFTER_DAYS": ("retranslate_after_days", int),
    "MODSHELF_MODEL": ("model_id", str),
    "MODSHELF_BACKEND": ("backend", str),
    "MODSHELF_DEVICE": ("device", str),
}

# Fields persisted to settings.json (paths derived from data_dir are not)
_PERSISTED_FIELDS = (
    "workshop_path",
    "translation_cache_ttl_days",
    "retranslate_after_days",
    "model_id",
    "source_lang",
    "target_lang",
    "backend",
    "device",
    "missing_metadata",
)


@dataclass
class Settings:
    """Resolved configuration for one process."""

    data_dir: Path = DEFAULT_DATA_DIR
    db_path: Path | None = None
    models_dir: Path | None = None
    workshop_path: str = ""

    # Translation
    model_id: str = DEFAULT_MODEL_ID
    source_lang: str = "zh"
    target_lang: str = "en"
    backend: str = "transformers"
    device: str = "auto"
    max_length: int = 512
    num_beams: int = 4
    batch_group_size: int = 5

    # Cache rows expire after this many days
    translation_cache_ttl_days: int = 30
    # Stored item translations older than this are redone on the next scan
    retranslate_after_days: int = 7

    # Catalog
    catalog_batch_size: int = 100
    catalog_batch_delay: float = 1.0
    catalog_timeout: float = 30.0
    missing_metadata: str = "skip"

    def __post_init__(self) -> None:
        self.data_dir = Path(self.data_dir)
        if self.db_path is None:
            self.db_path = self.data_dir / "mods.db"
        if self.models_dir is None:
            self.models_dir = self.data_dir / "models"
        if self.backend not in BACKENDS:
            raise ValueError(
                f"Unknown backend '{self.backend}'. Choose from: {', '.join(BACKENDS)}"
            )
        if self.missing_metadata not in MISSING_METADATA_POLICIES:
            raise ValueError(
                f"Unknown missing-metadata policy '{self.missing_metadata}'. "
                f"Choose from: {', '.join(MISSING_METADATA_POLICIES)}"
            )
        if self.translation_cache_ttl_days <= 0 or self.retranslate_after_days <= 0:
            raise ValueError("TTL values must be positive numbers of days")

    @property
    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME

    @property
    def workshop_configured(self) -> bool:
        return bool(self.workshop_path and self.workshop_path.strip())

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        return {k: str(v) if isinstance(v, Path) else v for k, v in data.items()}


def _read_settings_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return {}
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        logger.debug("Unknown keys in %s: %s", path, ", ".join(sorted(unknown)))
    return {k: v for k, v in data.items() if k in _PERSISTED_FIELDS}


def load_settings(
    data_dir: Path | None = None,
    env: dict[str, str] | None = None,
    **overrides: object,
) -> Settings:
    """Build Settings from defaults, settings.json, the environment and overrides.

    Later sources win. ``None`` overrides are ignored so CLI options that were
    not given fall through to the lower layers.
    """
    env = os.environ if env is None else env

    if data_dir is None:
        data_dir = Path(env["MODSHELF_DATA_DIR"]) if env.get("MODSHELF_DATA_DIR") else DEFAULT_DATA_DIR

    values: dict[str, object] = {"data_dir": Path(data_dir)}
    values.update(_read_settings_file(Path(data_dir) / SETTINGS_FILENAME))

    for var, (name, convert) in _ENV_OVERRIDES.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            values[name] = convert(raw)
        except ValueError:
            logger.warning("Ignoring invalid value for %s: %r", var, raw)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)  # type: ignore[arg-type]


def save_settings(settings: Settings, **changes: object) -> Settings:
    """Apply ``changes`` and persist the user-editable fields to settings.json."""
    updated = replace(settings, **changes) if changes else settings
    updated.data_dir.mkdir(parents=True, exist_ok=True)
    payload = {name: getattr(updated, name) for name in _PERSISTED_FIELDS}
    updated.settings_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    logger.info("Settings saved to %s", updated.settings_path)
    return updated
