"""Tests for the Opus-MT CTranslate2 loader (all deps mocked)."""

from __future__ import annotations

import sys
from types import ModuleType, SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

_MODULE = "modshelf.backends.opus_mt"
MODEL_ID = "Helsinki-NLP/opus-mt-zh-en"

# ---------------------------------------------------------------------------
# Helpers to build mock ctranslate2 / transformers modules
# ---------------------------------------------------------------------------


def _make_mock_modules():
    ct2 = ModuleType("ctranslate2")
    ct2.get_supported_compute_types = MagicMock(side_effect=RuntimeError("no CUDA"))
    ct2.Translator = MagicMock()

    transformers = ModuleType("transformers")
    transformers.AutoTokenizer = MagicMock()

    ct2_converters = ModuleType("ctranslate2.converters")
    ct2_transformers = ModuleType("ctranslate2.converters.transformers")
    ct2_transformers.TransformersConverter = MagicMock()

    return ct2, transformers, ct2_converters, ct2_transformers


def _make_hypothesis(tokens: list[str]):
    return SimpleNamespace(hypotheses=[tokens])


@pytest.fixture()
def mock_ct2_env(tmp_path):
    ct2, transformers_mod, ct2_conv, ct2_conv_t = _make_mock_modules()

    patches = {
        "ctranslate2": ct2,
        "ctranslate2.converters": ct2_conv,
        "ctranslate2.converters.transformers": ct2_conv_t,
        "transformers": transformers_mod,
    }

    with patch.dict(sys.modules, patches):
        # Force reimport so the loader picks up our mocks
        if _MODULE in sys.modules:
            del sys.modules[_MODULE]

        from modshelf.backends.opus_mt import CTranslate2Loader

        models_dir = tmp_path / "models"

        tokenizer = MagicMock()
        tokenizer.encode.side_effect = lambda text: list(range(len(text.split())))
        tokenizer.convert_ids_to_tokens.side_effect = lambda ids: [f"tok{i}" for i in ids]
        tokenizer.convert_tokens_to_ids.side_effect = lambda tokens: list(range(len(tokens)))
        tokenizer.decode.side_effect = lambda ids, **kw: "translated text"
        transformers_mod.AutoTokenizer.from_pretrained.return_value = tokenizer

        translator = MagicMock()
        translator.translate_batch.side_effect = lambda tokenized, **kw: [
            _make_hypothesis(["out0", "out1"]) for _ in tokenized
        ]
        ct2.Translator.return_value = translator

        yield SimpleNamespace(
            Loader=CTranslate2Loader,
            ct2=ct2,
            converter=ct2_conv_t.TransformersConverter,
            transformers=transformers_mod,
            tokenizer=tokenizer,
            translator=translator,
            models_dir=models_dir,
        )


def _with_converted_model(env, name: str = "opus-mt-zh-en-ct2-int8"):
    model_dir = env.models_dir / name
    model_dir.mkdir(parents=True)
    (model_dir / "model.bin").write_bytes(b"fake")
    return model_dir


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestLoad:
    def test_uses_existing_conversion(self, mock_ct2_env):
        model_dir = _with_converted_model(mock_ct2_env)
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")
        loader.load(MODEL_ID, "zh")

        assert mock_ct2_env.ct2.Translator.call_args[0][0] == str(model_dir)
        mock_ct2_env.converter.assert_not_called()

    def test_converts_when_missing(self, mock_ct2_env):
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")
        loader.load(MODEL_ID, "zh")

        mock_ct2_env.converter.assert_called_once_with(MODEL_ID, low_cpu_mem_usage=True)
        _, kwargs = mock_ct2_env.converter.return_value.convert.call_args
        assert kwargs["quantization"] == "int8"

    def test_failed_conversion_cleans_up(self, mock_ct2_env):
        mock_ct2_env.converter.return_value.convert.side_effect = OSError("disk full")
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")

        with pytest.raises(RuntimeError, match="Failed to convert"):
            loader.load(MODEL_ID, "zh")
        assert not (mock_ct2_env.models_dir / "opus-mt-zh-en-ct2-int8").exists()

    def test_reuses_other_quantization(self, mock_ct2_env):
        model_dir = _with_converted_model(mock_ct2_env, "opus-mt-zh-en-ct2-float16")
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")
        loader.load(MODEL_ID, "zh")

        assert mock_ct2_env.ct2.Translator.call_args[0][0] == str(model_dir)

    def test_tokenizer_saved_beside_model(self, mock_ct2_env):
        model_dir = _with_converted_model(mock_ct2_env)
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")
        loader.load(MODEL_ID, "zh")

        mock_ct2_env.transformers.AutoTokenizer.from_pretrained.assert_called_once_with(MODEL_ID)
        mock_ct2_env.tokenizer.save_pretrained.assert_called_once_with(str(model_dir))

    def test_local_tokenizer_is_preferred(self, mock_ct2_env):
        model_dir = _with_converted_model(mock_ct2_env)
        (model_dir / "tokenizer_config.json").write_text("{}")
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu")
        loader.load(MODEL_ID, "zh")

        mock_ct2_env.transformers.AutoTokenizer.from_pretrained.assert_called_once_with(
            str(model_dir), local_files_only=True
        )


class TestTranslator:
    def test_returns_translation_text(self, mock_ct2_env):
        _with_converted_model(mock_ct2_env)
        model = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu").load(
            MODEL_ID, "zh"
        )
        result = model("你好 世界", max_length=512, num_beams=4, early_stopping=True)

        assert result == {"translation_text": "translated text"}
        _, kwargs = mock_ct2_env.translator.translate_batch.call_args
        assert kwargs == {"beam_size": 4, "max_decoding_length": 512}

    def test_empty_hypothesis_keeps_segment(self, mock_ct2_env):
        _with_converted_model(mock_ct2_env)
        mock_ct2_env.translator.translate_batch.side_effect = lambda tokenized, **kw: [
            SimpleNamespace(hypotheses=[]) for _ in tokenized
        ]
        model = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu").load(
            MODEL_ID, "zh"
        )
        result = model("保持原样", max_length=512, num_beams=4, early_stopping=True)
        assert result == {"translation_text": "保持原样"}

    def test_long_text_split_into_segments(self, mock_ct2_env):
        _with_converted_model(mock_ct2_env)
        model = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cpu").load(
            MODEL_ID, "zh"
        )
        long_text = ("word " * 300 + ". ") * 2
        result = model(long_text, max_length=512, num_beams=4, early_stopping=True)

        tokenized = mock_ct2_env.translator.translate_batch.call_args[0][0]
        assert len(tokenized) == 2
        assert result == {"translation_text": "translated text translated text"}


class TestDeviceResolution:
    def test_device_auto_cpu_fallback(self, mock_ct2_env):
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="auto")
        assert loader.device == "cpu"
        assert loader.compute_type == "int8"

    def test_device_explicit_cuda(self, mock_ct2_env):
        mock_ct2_env.ct2.get_supported_compute_types.side_effect = None
        mock_ct2_env.ct2.get_supported_compute_types.return_value = {
            "int8_float16", "int8", "float32",
        }
        loader = mock_ct2_env.Loader(models_dir=mock_ct2_env.models_dir, device="cuda")
        assert loader.device == "cuda"
        assert loader.compute_type == "int8_float16"


class TestImportError:
    def test_import_error_ctranslate2(self):
        with patch.dict(sys.modules, {"ctranslate2": None}):
            if _MODULE in sys.modules:
                del sys.modules[_MODULE]

            from modshelf.backends.opus_mt import CTranslate2Loader

            with pytest.raises(ImportError, match="ctranslate2"):
                CTranslate2Loader(device="cpu")
