"""Opus-MT + CTranslate2 loader (quantized offline inference)."""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
from pathlib import Path

from modshelf.backends.base import ModelLoader, TranslatorFn

logger = logging.getLogger(__name__)

MAX_TOKENS = 480  # Marian models support max 512 positions; leave margin
_INTER_THREADS = min(4, os.cpu_count() or 1)  # >4 doesn't help CT2

# Sentence ends for both CJK and Latin punctuation
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[。！？!?.…])\s*")

_DEFAULT_MODELS_DIR = Path.home() / ".modshelf" / "models"


class CTranslate2Loader(ModelLoader):
    """Converts a Hugging Face Opus-MT model to CTranslate2 once, then loads it.

    The converted model lives in ``models_dir/<name>-ct2-<compute_type>`` and
    the tokenizer is saved next to it, so later starts are fully offline.
    """

    name = "ctranslate2"

    def __init__(self, models_dir: Path | None = None, device: str = "auto") -> None:
        try:
            import ctranslate2  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "ctranslate2 package required for the CTranslate2 loader. "
                "Install with: pip install -e '.[ctranslate2]'"
            ) from e
        try:
            import transformers  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "transformers package required for the CTranslate2 loader. "
                "Install with: pip install -e '.[ctranslate2]'"
            ) from e

        self._models_dir = models_dir or _DEFAULT_MODELS_DIR
        self._models_dir.mkdir(parents=True, exist_ok=True)

        self._register_nvidia_dll_dirs()
        self._device = self._resolve_device(device)
        self._compute_type = self._resolve_compute_type(self._device)

    @property
    def device(self) -> str:
        return self._device

    @property
    def compute_type(self) -> str:
        return self._compute_type

    @staticmethod
    def _register_nvidia_dll_dirs() -> None:
        """Add nvidia pip package bin/ dirs to the DLL search path (Windows only)."""
        if sys.platform != "win32":
            return
        try:
            import nvidia

            nvidia_root = Path(nvidia.__path__[0])
            for pkg in ("cublas", "cuda_runtime", "cudnn"):
                bin_dir = nvidia_root / pkg / "bin"
                if bin_dir.is_dir():
                    bin_str = str(bin_dir)
                    os.add_dll_directory(bin_str)
                    # CT2 (C++) needs DLLs on PATH, not just add_dll_directory
                    if bin_str not in os.environ.get("PATH", ""):
                        os.environ["PATH"] = bin_str + os.pathsep + os.environ.get("PATH", "")
        except (ImportError, AttributeError, OSError):
            pass

    @staticmethod
    def _resolve_device(device: str) -> str:
        if device in ("cpu", "cuda"):
            return device
        try:
            import ctranslate2

            if not ctranslate2.get_supported_compute_types("cuda"):
                return "cpu"

            # The driver alone makes the query above succeed; cuBLAS must load too
            import ctypes

            for lib_name in ("cublas64_12", "libcublas.so.12"):
                try:
                    ctypes.cdll.LoadLibrary(lib_name)
                    return "cuda"
                except OSError:
                    continue
            return "cpu"
        except (RuntimeError, ImportError, OSError):
            return "cpu"

    @staticmethod
    def _resolve_compute_type(device: str) -> str:
        if device != "cuda":
            return "int8"
        try:
            import ctranslate2

            supported = ctranslate2.get_supported_compute_types("cuda")
            for candidate in ("int8_float16", "int8", "float16", "float32"):
                if candidate in supported:
                    return candidate
            return "float32"
        except (RuntimeError, ImportError, OSError):
            return "int8"

    def load(self, model_id: str, source_lang: str) -> TranslatorFn:
        import ctranslate2
        from transformers import AutoTokenizer

        ct2_dir = self._ensure_model(model_id)
        translator = ctranslate2.Translator(
            str(ct2_dir),
            device=self._device,
            compute_type=self._compute_type,
            inter_threads=_INTER_THREADS if self._device == "cpu" else 1,
        )

        # Tokenizer is saved beside the converted model after the first download
        if (ct2_dir / "tokenizer_config.json").exists():
            tokenizer = AutoTokenizer.from_pretrained(str(ct2_dir), local_files_only=True)
        else:
            tokenizer = AutoTokenizer.from_pretrained(model_id)
            tokenizer.save_pretrained(str(ct2_dir))

        return _CT2Translator(translator, tokenizer)

    def _ct2_model_dir(self, model_id: str) -> Path:
        # Helsinki-NLP/opus-mt-zh-en → opus-mt-zh-en-ct2-int8
        short_name = model_id.split("/")[-1]
        return self._models_dir / f"{short_name}-ct2-{self._compute_type}"

    def _find_existing_ct2(self, model_id: str) -> Path | None:
        """Find an existing conversion in any quantization format."""
        short_name = model_id.split("/")[-1]
        for candidate in sorted(self._models_dir.glob(f"{short_name}-ct2-*")):
            if (candidate / "model.bin").exists():
                return candidate
        return None

    def _ensure_model(self, model_id: str) -> Path:
        ct2_dir = self._ct2_model_dir(model_id)
        if (ct2_dir / "model.bin").exists():
            return ct2_dir
        existing = self._find_existing_ct2(model_id)
        if existing is not None:
            return existing
        self._convert_model(model_id, ct2_dir)
        return ct2_dir

    def _convert_model(self, model_id: str, output_dir: Path) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Converting %s to CTranslate2 (%s)...", model_id, self._compute_type)
        try:
            from ctranslate2.converters.transformers import TransformersConverter

            converter = TransformersConverter(model_id, low_cpu_mem_usage=True)
            converter.convert(str(output_dir), quantization=self._compute_type, force=True)
        except Exception as e:
            # Clean up partial conversion
            if output_dir.exists():
                shutil.rmtree(output_dir)
            raise RuntimeError(f"Failed to convert model {model_id}: {e}") from e


class _CT2Translator:
    """Adapts a CTranslate2 translator + tokenizer to the translator callable."""

    def __init__(self, translator: object, tokenizer: object) -> None:
        self._translator = translator
        self._tokenizer = tokenizer

    def __call__(
        self,
        text: str,
        *,
        max_length: int = 512,
        num_beams: int = 4,
        early_stopping: bool = True,
    ) -> dict[str, str]:
        # CT2 beam search always stops at EOS; early_stopping has no knob here
        segments = self._split_long_text(text)
        tokenized = [
            self._tokenizer.convert_ids_to_tokens(  # type: ignore[attr-defined]
                self._tokenizer.encode(segment)  # type: ignore[attr-defined]
            )
            for segment in segments
        ]
        results = self._translator.translate_batch(  # type: ignore[attr-defined]
            tokenized,
            beam_size=num_beams,
            max_decoding_length=max_length,
        )
        decoded: list[str] = []
        for segment, result in zip(segments, results):
            if not result.hypotheses:
                decoded.append(segment)
                continue
            ids = self._tokenizer.convert_tokens_to_ids(result.hypotheses[0])  # type: ignore[attr-defined]
            decoded.append(
                self._tokenizer.decode(ids, skip_special_tokens=True)  # type: ignore[attr-defined]
            )
        return {"translation_text": " ".join(d for d in decoded if d)}

    def _split_long_text(self, text: str) -> list[str]:
        """Split text into sentence groups that fit within MAX_TOKENS."""
        if len(self._tokenizer.encode(text)) <= MAX_TOKENS:  # type: ignore[attr-defined]
            return [text]

        sentences = [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]
        segments: list[str] = []
        current: list[str] = []
        current_len = 0
        for sentence in sentences:
            sent_len = len(self._tokenizer.encode(sentence))  # type: ignore[attr-defined]
            if current and current_len + sent_len > MAX_TOKENS:
                segments.append("".join(current))
                current, current_len = [], 0
            current.append(sentence)
            current_len += sent_len
        if current:
            segments.append("".join(current))
        return segments or [text]
