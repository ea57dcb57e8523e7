"""Hugging Face ``transformers`` translation-pipeline loader."""

from __future__ import annotations

import logging
from pathlib import Path

from modshelf.backends.base import ModelLoader, TranslatorFn

logger = logging.getLogger(__name__)

_DEFAULT_MODELS_DIR = Path.home() / ".modshelf" / "models"


class TransformersPipelineLoader(ModelLoader):
    """Loads a Marian/Opus-MT model through ``transformers.pipeline``.

    Weights are downloaded once into ``models_dir`` and reused from there on
    later starts.
    """

    name = "transformers"

    def __init__(self, models_dir: Path | None = None, device: str = "auto") -> None:
        try:
            import transformers  # noqa: F401
        except ImportError as e:
            raise ImportError(
                "transformers package required for the default translation model. "
                "Install with: pip install -e '.[transformers]'"
            ) from e

        self._models_dir = models_dir or _DEFAULT_MODELS_DIR
        self._models_dir.mkdir(parents=True, exist_ok=True)
        self._device = device

    @staticmethod
    def _resolve_device(device: str) -> int:
        """Map auto/cpu/cuda to the pipeline's device index."""
        if device == "cpu":
            return -1
        if device == "cuda":
            return 0
        try:
            import torch

            return 0 if torch.cuda.is_available() else -1
        except ImportError:
            return -1

    def load(self, model_id: str, source_lang: str) -> TranslatorFn:
        from transformers import AutoModelForSeq2SeqLM, AutoTokenizer, pipeline

        logger.info(
            "Loading translation model %s (first run downloads ~300 MB into %s)",
            model_id, self._models_dir,
        )
        cache_dir = str(self._models_dir)
        tokenizer = AutoTokenizer.from_pretrained(model_id, cache_dir=cache_dir)
        model = AutoModelForSeq2SeqLM.from_pretrained(model_id, cache_dir=cache_dir)
        translator = pipeline(
            "translation",
            model=model,
            tokenizer=tokenizer,
            device=self._resolve_device(self._device),
        )
        return translator  # type: ignore[no-any-return]
