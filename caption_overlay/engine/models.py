"""
Engine Configuration Models

Immutable description of how the engine process should run. A new
EngineConfig always replaces the previous one as a whole; the reconciler
compares instances by value to decide whether a restart is needed.

Command line built from a config:
  <engine> -m <model path> -l <lang|auto> [-t <target lang> -tm <translation model path>]
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from caption_overlay.config import (
    AUTO_LANGUAGE,
    DEFAULT_MODEL,
    DEFAULT_TARGET_LANGUAGE,
    DEFAULT_TRANSLATION_MODEL,
    get_model_path,
    get_translation_model_path,
)


@dataclass(frozen=True)
class TranslationSettings:
    """Translation target for the engine."""

    target_lang: str = DEFAULT_TARGET_LANGUAGE
    translation_model: str = DEFAULT_TRANSLATION_MODEL


@dataclass(frozen=True)
class EngineConfig:
    """
    Full engine configuration.

    Attributes:
        model: Speech model id (see config.MODELS)
        source_lang: Spoken language code, or 'auto' to let the engine detect it
        translation: Translation settings, None when translation is disabled
    """

    model: str = DEFAULT_MODEL
    source_lang: str = AUTO_LANGUAGE
    translation: TranslationSettings | None = field(default=None)

    @property
    def auto_detect(self) -> bool:
        """True when the engine is asked to detect the spoken language."""
        return self.source_lang == AUTO_LANGUAGE

    def with_model(self, model: str) -> "EngineConfig":
        return replace(self, model=model)

    def with_source_language(self, source_lang: str) -> "EngineConfig":
        return replace(self, source_lang=source_lang)

    def with_translation(
        self,
        enabled: bool,
        target_lang: str | None = None,
        translation_model: str | None = None,
    ) -> "EngineConfig":
        """
        Return a copy with translation enabled or disabled.

        Args:
            enabled: Whether translation should run
            target_lang: Target language (keeps current/default if None)
            translation_model: Translation model id (keeps current/default if None)
        """
        if not enabled:
            return replace(self, translation=None)

        current = self.translation or TranslationSettings()
        return replace(
            self,
            translation=TranslationSettings(
                target_lang=target_lang or current.target_lang,
                translation_model=translation_model or current.translation_model,
            ),
        )

    def warnings(self) -> list[str]:
        """
        Check soft invariants.

        Violations are reported, never rejected: translating into the spoken
        language is allowed but almost certainly a mistake.

        Returns:
            Human readable warning messages (empty when the config looks sane).
        """
        problems = []
        if self.translation and self.translation.target_lang == self.source_lang:
            problems.append(
                f"Translation target '{self.translation.target_lang}' is the same as the source language"
            )
        return problems

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the settings file."""
        return {
            "model": self.model,
            "sourceLang": self.source_lang,
            "translationEnabled": self.translation is not None,
            "targetLang": (self.translation or TranslationSettings()).target_lang,
            "translationModel": (self.translation or TranslationSettings()).translation_model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineConfig":
        """
        Build a config from a settings dictionary.

        Missing keys fall back to defaults.
        """
        translation = None
        if data.get("translationEnabled"):
            translation = TranslationSettings(
                target_lang=data.get("targetLang") or DEFAULT_TARGET_LANGUAGE,
                translation_model=data.get("translationModel") or DEFAULT_TRANSLATION_MODEL,
            )
        return cls(
            model=data.get("model") or DEFAULT_MODEL,
            source_lang=data.get("sourceLang") or AUTO_LANGUAGE,
            translation=translation,
        )

    def __str__(self) -> str:
        text = f"{self.model}/{self.source_lang}"
        if self.translation:
            text += f" -> {self.translation.target_lang} ({self.translation.translation_model})"
        return text


def build_engine_args(config: EngineConfig, models_dir: Path | None = None) -> list[str]:
    """
    Build engine command line arguments for a configuration.

    Args:
        config: Engine configuration
        models_dir: Directory holding model weights (uses config default if None)

    Returns:
        Argument list (without the executable).

    Raises:
        KeyError: If the config names an unknown model.
    """
    args = ["-m", str(get_model_path(config.model, models_dir)), "-l", config.source_lang]

    if config.translation:
        args.extend(["-t", config.translation.target_lang])
        args.extend(
            ["-tm", str(get_translation_model_path(config.translation.translation_model, models_dir))]
        )

    return args
