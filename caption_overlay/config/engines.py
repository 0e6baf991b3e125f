"""
Engine Definitions

Single source of truth for the speech engine's models, languages and the
runtime settings the supervisor needs to launch it.

Architecture:
- MODELS: speech recognition models (ggml Whisper weights)
- TRANSLATION_MODELS: optional T5/mT5 translation models
- LANGUAGES: language codes understood by the engine
"""

import os
from pathlib import Path
from typing import Any

# ============== Model Definitions ==============
MODELS: dict[str, dict[str, Any]] = {
    "tiny": {
        "name": "Whisper Tiny",
        "file": "whisper-tiny.gguf",
        "description": "Fastest, lowest accuracy - good for weak CPUs",
    },
    "base": {
        "name": "Whisper Base",
        "file": "whisper-base.gguf",
        "description": "Balanced speed and accuracy (default)",
    },
    "small": {
        "name": "Whisper Small",
        "file": "whisper-small.gguf",
        "description": "Better accuracy, needs a recent CPU",
    },
    "medium": {
        "name": "Whisper Medium",
        "file": "whisper-medium.gguf",
        "description": "High accuracy, GPU recommended",
    },
    "large-v3": {
        "name": "Whisper Large V3",
        "file": "whisper-large-v3.gguf",
        "description": "Best accuracy, multilingual, GPU required",
    },
}

TRANSLATION_MODELS: dict[str, dict[str, Any]] = {
    "t5-small": {
        "name": "T5 Small",
        "file": "t5-small.gguf",
        "description": "English/French/German/Romanian only",
    },
    "mt5-small": {
        "name": "mT5 Small",
        "file": "mt5-small.gguf",
        "description": "Multilingual, lightweight (default)",
    },
    "mt5-base": {
        "name": "mT5 Base",
        "file": "mt5-base.gguf",
        "description": "Multilingual, better quality",
    },
}

# Language codes the engine accepts (code: display name)
LANGUAGES: dict[str, str] = {
    "en": "English",
    "fr": "French",
    "es": "Spanish",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "pl": "Polish",
    "ru": "Russian",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ar": "Arabic",
    "hi": "Hindi",
    "tr": "Turkish",
}

AUTO_LANGUAGE = "auto"

DEFAULT_MODEL = "base"
DEFAULT_TRANSLATION_MODEL = "mt5-small"
DEFAULT_TARGET_LANGUAGE = "en"

# ============== Runtime Settings ==============
ENGINE_BINARY = os.getenv("CAPTION_ENGINE_BIN", "caption-engine")
MODELS_DIR = Path(os.getenv("CAPTION_MODELS_DIR", "models"))

# Quiet period used to coalesce bursts of configuration changes
RESTART_DEBOUNCE_S = int(os.getenv("CAPTION_RESTART_DEBOUNCE_MS", "400")) / 1000.0

# Time the engine gets to exit after SIGTERM before it is killed
STOP_GRACE_S = float(os.getenv("CAPTION_STOP_GRACE_S", "5.0"))

# Time the output pipes may stay open after a kill (held by a leftover child)
DRAIN_GRACE_S = float(os.getenv("CAPTION_DRAIN_GRACE_S", "2.0"))


def get_model_config(model: str | None = None) -> dict[str, Any]:
    """
    Get configuration for a speech recognition model.

    Args:
        model: Model id ('tiny', 'base', ...). Uses default if None.

    Returns:
        Model configuration dictionary.

    Raises:
        KeyError: If model id is not found.
    """
    key = model or DEFAULT_MODEL
    if key not in MODELS:
        raise KeyError(f"Unknown model: {key}. Available: {list(MODELS.keys())}")
    return MODELS[key]


def get_translation_model_config(model: str | None = None) -> dict[str, Any]:
    """
    Get configuration for a translation model.

    Args:
        model: Translation model id. Uses default if None.

    Returns:
        Translation model configuration dictionary.

    Raises:
        KeyError: If translation model id is not found.
    """
    key = model or DEFAULT_TRANSLATION_MODEL
    if key not in TRANSLATION_MODELS:
        raise KeyError(
            f"Unknown translation model: {key}. Available: {list(TRANSLATION_MODELS.keys())}"
        )
    return TRANSLATION_MODELS[key]


def get_model_path(model: str, models_dir: Path | None = None) -> Path:
    """Resolve the weights file for a speech model."""
    return (models_dir or MODELS_DIR) / get_model_config(model)["file"]


def get_translation_model_path(model: str, models_dir: Path | None = None) -> Path:
    """Resolve the weights file for a translation model."""
    return (models_dir or MODELS_DIR) / get_translation_model_config(model)["file"]


def get_language_name(code: str) -> str:
    """
    Get display name for a language code.

    Args:
        code: Language code (e.g., 'fr') or 'auto'

    Returns:
        Display name, or the code itself when unknown.
    """
    if code == AUTO_LANGUAGE:
        return "Auto-detect"
    return LANGUAGES.get(code, code)


def list_models() -> dict[str, str]:
    """
    List all speech models with descriptions.

    Returns:
        Dict mapping model id to description.
    """
    return {name: cfg["description"] for name, cfg in MODELS.items()}


def list_translation_models() -> dict[str, str]:
    """
    List all translation models with descriptions.

    Returns:
        Dict mapping translation model id to description.
    """
    return {name: cfg["description"] for name, cfg in TRANSLATION_MODELS.items()}
