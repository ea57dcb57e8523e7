"""Dummy model loader for testing: prefixes strings with the target tag."""

from __future__ import annotations

from modshelf.backends.base import ModelLoader, TranslatorFn


class DummyLoader(ModelLoader):
    """Loader whose "model" prefixes each string with a language tag.

    Example: "测试模组" → "[EN] 测试模组"
    """

    name = "dummy"

    def __init__(self, target_lang: str = "en") -> None:
        self._tag = f"[{target_lang.upper()}]"
        self.load_count = 0

    def load(self, model_id: str, source_lang: str) -> TranslatorFn:
        self.load_count += 1
        tag = self._tag

        def _translate(
            text: str,
            *,
            max_length: int = 512,
            num_beams: int = 4,
            early_stopping: bool = True,
        ) -> list[dict[str, str]]:
            return [{"translation_text": f"{tag} {text}"[:max_length]}]

        return _translate
