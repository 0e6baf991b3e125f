"""
Engine Configuration Module

Centralized model definitions and configuration helpers.
"""

from .engines import (
    AUTO_LANGUAGE,
    DEFAULT_MODEL,
    DEFAULT_TARGET_LANGUAGE,
    DEFAULT_TRANSLATION_MODEL,
    DRAIN_GRACE_S,
    ENGINE_BINARY,
    LANGUAGES,
    MODELS,
    MODELS_DIR,
    RESTART_DEBOUNCE_S,
    STOP_GRACE_S,
    TRANSLATION_MODELS,
    get_language_name,
    get_model_config,
    get_model_path,
    get_translation_model_config,
    get_translation_model_path,
    list_models,
    list_translation_models,
)

__all__ = [
    "AUTO_LANGUAGE",
    "DEFAULT_MODEL",
    "DEFAULT_TARGET_LANGUAGE",
    "DEFAULT_TRANSLATION_MODEL",
    "DRAIN_GRACE_S",
    "ENGINE_BINARY",
    "LANGUAGES",
    "MODELS",
    "MODELS_DIR",
    "RESTART_DEBOUNCE_S",
    "STOP_GRACE_S",
    "TRANSLATION_MODELS",
    "get_language_name",
    "get_model_config",
    "get_model_path",
    "get_translation_model_config",
    "get_translation_model_path",
    "list_models",
    "list_translation_models",
]
