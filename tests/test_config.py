"""Tests for settings resolution and persistence."""

import json

import pytest

from modshelf.config import Settings, load_settings, save_settings


class TestDefaults:
    def test_defaults(self, tmp_path):
        settings = load_settings(data_dir=tmp_path, env={})

        assert settings.db_path == tmp_path / "mods.db"
        assert settings.models_dir == tmp_path / "models"
        assert settings.translation_cache_ttl_days == 30
        assert settings.retranslate_after_days == 7
        assert settings.batch_group_size == 5
        assert settings.max_length == 512
        assert settings.num_beams == 4
        assert settings.backend == "transformers"
        assert settings.missing_metadata == "skip"
        assert not settings.workshop_configured

    def test_invalid_backend(self, tmp_path):
        with pytest.raises(ValueError, match="Unknown backend"):
            Settings(data_dir=tmp_path, backend="deepl")

    def test_invalid_policy(self, tmp_path):
        with pytest.raises(ValueError, match="missing-metadata"):
            Settings(data_dir=tmp_path, missing_metadata="ignore")

    def test_non_positive_ttl(self, tmp_path):
        with pytest.raises(ValueError):
            Settings(data_dir=tmp_path, translation_cache_ttl_days=0)


class TestLayering:
    def test_env_overrides_file(self, tmp_path):
        (tmp_path / "settings.json").write_text(json.dumps({
            "workshop_path": "/from/file",
            "translation_cache_ttl_days": 10,
        }))
        settings = load_settings(
            data_dir=tmp_path,
            env={"TRANSLATION_CACHE_TTL_DAYS": "14", "MODSHELF_BACKEND": "dummy"},
        )

        assert settings.workshop_path == "/from/file"
        assert settings.translation_cache_ttl_days == 14
        assert settings.backend == "dummy"

    def test_overrides_win_and_none_is_ignored(self, tmp_path):
        settings = load_settings(
            data_dir=tmp_path,
            env={"MODSHELF_WORKSHOP_PATH": "/from/env"},
            workshop_path=None,
            retranslate_after_days=3,
        )
        assert settings.workshop_path == "/from/env"
        assert settings.retranslate_after_days == 3

    def test_data_dir_from_env(self, tmp_path):
        settings = load_settings(env={"MODSHELF_DATA_DIR": str(tmp_path)})
        assert settings.data_dir == tmp_path

    def test_invalid_env_value_ignored(self, tmp_path):
        settings = load_settings(data_dir=tmp_path, env={"TRANSLATION_CACHE_TTL_DAYS": "soon"})
        assert settings.translation_cache_ttl_days == 30

    def test_unreadable_settings_file_ignored(self, tmp_path):
        (tmp_path / "settings.json").write_text("{not json")
        assert load_settings(data_dir=tmp_path, env={}).workshop_path == ""

    def test_unpersisted_keys_in_file_ignored(self, tmp_path):
        (tmp_path / "settings.json").write_text(json.dumps({"db_path": "/elsewhere.db"}))
        settings = load_settings(data_dir=tmp_path, env={})
        assert settings.db_path == tmp_path / "mods.db"


class TestSave:
    def test_round_trip_workshop_path(self, tmp_path):
        settings = load_settings(data_dir=tmp_path, env={})
        updated = save_settings(settings, workshop_path="/games/workshop/content/3167020")

        assert updated.workshop_configured
        data = json.loads((tmp_path / "settings.json").read_text())
        assert data["workshop_path"] == "/games/workshop/content/3167020"
        assert "db_path" not in data
        assert load_settings(data_dir=tmp_path, env={}).workshop_path == updated.workshop_path
