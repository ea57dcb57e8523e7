"""Abstract base class for model loaders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol


class TranslatorFn(Protocol):
    """A loaded model: call it with text and decoding options.

    Returns either ``{"translation_text": ...}`` or
    ``[{"translation_text": ...}]`` depending on the library.
    """

    def __call__(
        self,
        text: str,
        *,
        max_length: int,
        num_beams: int,
        early_stopping: bool,
    ) -> Any: ...


class ModelLoader(ABC):
    """Interface for objects that load a translation model."""

    name: str = "base"

    @abstractmethod
    def load(self, model_id: str, source_lang: str) -> TranslatorFn:
        """Load (downloading on first use) and return a translator callable.

        Args:
            model_id: Model identifier, e.g. "Helsinki-NLP/opus-mt-zh-en".
            source_lang: Source language hint (e.g. "zh").

        Blocking; the engine runs it in a worker thread.
        """
        ...

    def describe(self, model_id: str) -> str:
        """Short label for reports and ``modshelf validate``."""
        return f"{self.name}:{model_id}"


def extract_translation_text(result: Any) -> str | None:
    """Pull the translated string out of either result shape.

    Accepts a mapping with ``translation_text`` or a sequence whose first
    element is such a mapping. Returns None when neither shape matches.
    """
    if isinstance(result, dict):
        text = result.get("translation_text")
        return text if isinstance(text, str) and text else None
    if isinstance(result, (list, tuple)) and result:
        first = result[0]
        if isinstance(first, dict):
            text = first.get("translation_text")
            return text if isinstance(text, str) and text else None
    return None
