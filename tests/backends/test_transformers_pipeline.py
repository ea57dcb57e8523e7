"""Tests for the transformers pipeline loader (transformers mocked)."""

from __future__ import annotations

import sys
from types import ModuleType, SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

_MODULE = "modshelf.backends.transformers_pipeline"


@pytest.fixture()
def mock_transformers_env(tmp_path):
    transformers_mod = ModuleType("transformers")
    transformers_mod.AutoTokenizer = MagicMock()
    transformers_mod.AutoModelForSeq2SeqLM = MagicMock()
    translator = MagicMock(return_value=[{"translation_text": "Hello"}])
    transformers_mod.pipeline = MagicMock(return_value=translator)

    # torch missing: "auto" must fall back to CPU
    with patch.dict(sys.modules, {"transformers": transformers_mod, "torch": None}):
        if _MODULE in sys.modules:
            del sys.modules[_MODULE]

        from modshelf.backends.transformers_pipeline import TransformersPipelineLoader

        yield SimpleNamespace(
            Loader=TransformersPipelineLoader,
            transformers=transformers_mod,
            translator=translator,
            models_dir=tmp_path / "models",
        )


class TestLoad:
    def test_builds_translation_pipeline(self, mock_transformers_env):
        env = mock_transformers_env
        loader = env.Loader(models_dir=env.models_dir)
        model = loader.load("Helsinki-NLP/opus-mt-zh-en", "zh")

        assert model is env.translator
        env.transformers.AutoTokenizer.from_pretrained.assert_called_once_with(
            "Helsinki-NLP/opus-mt-zh-en", cache_dir=str(env.models_dir)
        )
        _, kwargs = env.transformers.pipeline.call_args
        assert env.transformers.pipeline.call_args[0] == ("translation",)
        assert kwargs["device"] == -1

    def test_models_dir_created(self, mock_transformers_env):
        env = mock_transformers_env
        env.Loader(models_dir=env.models_dir)
        assert env.models_dir.is_dir()

    def test_explicit_cuda(self, mock_transformers_env):
        env = mock_transformers_env
        loader = env.Loader(models_dir=env.models_dir, device="cuda")
        loader.load("m", "zh")
        assert env.transformers.pipeline.call_args[1]["device"] == 0

    def test_describe(self, mock_transformers_env):
        env = mock_transformers_env
        loader = env.Loader(models_dir=env.models_dir)
        assert loader.describe("m") == "transformers:m"


class TestImportError:
    def test_missing_transformers(self):
        with patch.dict(sys.modules, {"transformers": None}):
            if _MODULE in sys.modules:
                del sys.modules[_MODULE]

            from modshelf.backends.transformers_pipeline import TransformersPipelineLoader

            with pytest.raises(ImportError, match="transformers"):
                TransformersPipelineLoader()
