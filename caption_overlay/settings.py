"""
User preferences persisted between runs.

Stored as a small JSON file:
  {"model": "base", "sourceLang": "auto", "translationEnabled": false,
   "targetLang": "en", "translationModel": "mt5-small"}
"""

import json
import logging
import os
from pathlib import Path

from .config import DEFAULT_MODEL, DEFAULT_TRANSLATION_MODEL, MODELS, TRANSLATION_MODELS
from .engine import EngineConfig

logger = logging.getLogger(__name__)


def get_settings_file_path() -> Path:
    """Settings file location (CAPTION_SETTINGS_FILE overrides the default)."""
    override = os.environ.get("CAPTION_SETTINGS_FILE")
    if override:
        return Path(override)
    return Path.home() / ".caption_overlay" / "settings.json"


def load_settings(path: Path | None = None) -> EngineConfig:
    """
    Load saved preferences.

    A missing, unreadable or corrupt file yields the default configuration.
    Unknown model ids are replaced by defaults.

    Args:
        path: Settings file (uses get_settings_file_path() if None)

    Returns:
        EngineConfig built from the saved preferences.
    """
    path = path or get_settings_file_path()

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return EngineConfig()
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load settings from {path}: {e}")
        return EngineConfig()

    if not isinstance(data, dict):
        logger.warning(f"Ignoring malformed settings file {path}")
        return EngineConfig()

    config = EngineConfig.from_dict(data)

    if config.model not in MODELS:
        logger.warning(f"Unknown model '{config.model}' in settings, using {DEFAULT_MODEL}")
        config = config.with_model(DEFAULT_MODEL)

    if config.translation and config.translation.translation_model not in TRANSLATION_MODELS:
        logger.warning(
            f"Unknown translation model '{config.translation.translation_model}' in settings, "
            f"using {DEFAULT_TRANSLATION_MODEL}"
        )
        config = config.with_translation(
            True,
            target_lang=config.translation.target_lang,
            translation_model=DEFAULT_TRANSLATION_MODEL,
        )

    return config


def save_settings(config: EngineConfig, path: Path | None = None) -> bool:
    """
    Save preferences.

    Returns:
        True on success, False if the file could not be written.
    """
    path = path or get_settings_file_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)
    except OSError as e:
        logger.error(f"Failed to save settings to {path}: {e}")
        return False
    return True
