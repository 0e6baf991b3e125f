#!/usr/bin/env python3
"""
Caption Overlay Tray - System Tray Front End

A system tray application that drives the caption engine through the
CaptionBridge and lets the user reconfigure it.

Features:
- System tray icon with right-click menu
- Double-click to start/stop the engine
- Right-click menu to select model, source language and translation
- Shows the latest caption and engine status in the tray tooltip
- Notifications for engine errors
- Headless console mode (--headless) that logs captions

Usage:
  caption-overlay                      # Run as tray app
  caption-overlay --headless           # Console mode
  caption-overlay --model small -l fr  # Override saved preferences
"""

import argparse
import asyncio
import concurrent.futures
import contextlib
import ctypes
import logging
import signal
import sys
import threading
import time
from collections.abc import Sequence
from pathlib import Path

import pystray
from PIL import Image, ImageDraw

from .bridge import CaptionBridge
from .config import (
    AUTO_LANGUAGE,
    LANGUAGES,
    MODELS,
    TRANSLATION_MODELS,
    get_language_name,
    get_model_config,
    list_models,
    list_translation_models,
)
from .engine import (
    EngineConfig,
    EngineExited,
    ErrorEvent,
    LanguageDetectedEvent,
    OverlayEvent,
    SpawnFailed,
    StatusEvent,
    TranscriptionEvent,
    TranslationEvent,
)
from .settings import load_settings, save_settings
from .utils import set_log_level, setup_logging

logger = logging.getLogger(__name__)

APP_NAME = "Caption Overlay"
APP_VERSION = "1.0"

# Windows limits tray tooltips to 128 characters
TOOLTIP_LIMIT = 127


def _enable_dpi_awareness():
    """Per-monitor DPI awareness on Windows, no-op elsewhere."""
    try:
        ctypes.windll.shcore.SetProcessDpiAwareness(2)
    except Exception:
        with contextlib.suppress(Exception):
            ctypes.windll.user32.SetProcessDPIAware()


def describe_event(event: OverlayEvent) -> str | None:
    """
    One-line console rendering of an event.

    Returns:
        Text to log, or None for events not worth showing.
    """
    if isinstance(event, TranscriptionEvent):
        return f"📝 {event.text}"
    if isinstance(event, TranslationEvent):
        return f"🌐 {event.text}  ({event.original})"
    if isinstance(event, LanguageDetectedEvent):
        return f"🔎 Detected language: {get_language_name(event.language)}"
    if isinstance(event, StatusEvent):
        return f"ℹ️ {event.message}"
    if isinstance(event, ErrorEvent):
        return f"❌ {event.message}"
    return None


# ==============================================================================
# Tray Application
# ==============================================================================


class CaptionTray:
    """System tray application for Caption Overlay."""

    def __init__(
        self,
        preferences: EngineConfig,
        engine_command: Sequence[str] | None = None,
        models_dir: Path | None = None,
        persist: bool = True,
    ):
        """
        Initialize the tray app.

        Args:
            preferences: Configuration to start with (saved preferences)
            engine_command: Engine executable override
            models_dir: Model directory override
            persist: Save preference changes to the settings file
        """
        self.preferences = preferences
        self.persist = persist
        self.icon = None
        self.last_caption = ""
        self.last_status = "Stopped"
        self.detected_language: str | None = None

        # The bridge lives on its own event loop in a background thread
        self.loop = asyncio.new_event_loop()
        self._loop_thread: threading.Thread | None = None
        self.bridge = CaptionBridge(
            preferences, engine_command=engine_command, models_dir=models_dir
        )
        self.bridge.add_listener(self.on_engine_event)

    # ==========================================================================
    # Event loop plumbing
    # ==========================================================================

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start_loop(self):
        """Start the background event loop thread."""
        if self._loop_thread is None:
            self._loop_thread = threading.Thread(target=self._run_loop, daemon=True)
            self._loop_thread.start()

    def _submit(self, coro) -> concurrent.futures.Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def _call_soon(self, callback, *args):
        self.loop.call_soon_threadsafe(callback, *args)

    # ==========================================================================
    # Engine events (called on the bridge loop thread)
    # ==========================================================================

    def on_engine_event(self, event: OverlayEvent):
        """Update tray state from an engine event."""
        if isinstance(event, TranscriptionEvent):
            self.last_caption = event.text
        elif isinstance(event, TranslationEvent):
            self.last_caption = event.text
        elif isinstance(event, LanguageDetectedEvent):
            self.detected_language = event.language
        elif isinstance(event, StatusEvent):
            self.last_status = event.message
        elif isinstance(event, ErrorEvent):
            self.last_status = event.message
            self.notify("Caption engine error", event.message)
        elif isinstance(event, (EngineExited, SpawnFailed)):
            self.last_caption = ""
        else:
            return

        self.update_icon()

    def notify(self, title: str, message: str):
        if self.icon:
            try:
                self.icon.notify(message, title)
            except Exception as e:
                logger.debug(f"Notification not supported: {e}")

    # ==========================================================================
    # Icon
    # ==========================================================================

    def is_running(self) -> bool:
        return self.bridge.is_running

    def create_icon_image(self, running: bool = False) -> Image.Image:
        """Create a 256x256 caption bubble icon (green lines while running)."""
        size = 256
        s = size / 64  # Designed on a 64x64 grid

        img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)

        # Speech bubble
        draw.rounded_rectangle(
            [int(6 * s), int(10 * s), int(58 * s), int(46 * s)],
            radius=int(8 * s),
            fill=(36, 41, 46),
        )
        draw.polygon(
            [(int(16 * s), int(46 * s)), (int(28 * s), int(46 * s)), (int(14 * s), int(56 * s))],
            fill=(36, 41, 46),
        )

        # Caption lines
        line_color = (40, 200, 110) if running else (200, 200, 200)
        for top, right in ((18, 50), (28, 42), (38, 34)):
            draw.rounded_rectangle(
                [int(14 * s), int(top * s), int(right * s), int((top + 4) * s)],
                radius=int(2 * s),
                fill=line_color,
            )

        return img

    def tooltip(self) -> str:
        """Tooltip text: state, configuration and latest caption."""
        if not self.is_running():
            return f"{APP_NAME} - {self.last_status}"[:TOOLTIP_LIMIT]

        config = self.bridge.config
        model = get_model_config(config.model)["name"]
        lang = get_language_name(config.source_lang)
        text = f"{APP_NAME} - {model} ({lang})"
        if config.translation:
            text += f" → {get_language_name(config.translation.target_lang)}"
        if self.last_caption:
            text += f"\n{self.last_caption}"
        return text[:TOOLTIP_LIMIT]

    def update_icon(self):
        if self.icon:
            self.icon.icon = self.create_icon_image(self.is_running())
            self.icon.title = self.tooltip()

    # ==========================================================================
    # Actions (called from the tray thread)
    # ==========================================================================

    def start_captions(self):
        logger.info("Starting captions")
        self.last_status = "Starting..."
        self._submit(self.bridge.start())

    def stop_captions(self):
        logger.info("Stopping captions")
        self.last_status = "Stopped"
        self._submit(self.bridge.shutdown())

    def on_click(self, icon=None, item=None):
        """Toggle the engine (double-click / Start-Stop item)."""
        if self.is_running():
            self.stop_captions()
        else:
            self.start_captions()

    def _save_preferences(self):
        if self.persist:
            save_settings(self.preferences)

    def set_model(self, model: str):
        if model == self.preferences.model:
            return
        self.preferences = self.preferences.with_model(model)
        logger.info(f"Model: {MODELS[model]['name']}")
        self._save_preferences()
        self._call_soon(self.bridge.change_model, model)

    def set_source_language(self, lang_code: str):
        # Detection may have moved the engine off the saved choice
        if lang_code == self.preferences.source_lang == self.bridge.config.source_lang:
            return
        self.preferences = self.preferences.with_source_language(lang_code)
        self.detected_language = None
        logger.info(f"Source language: {get_language_name(lang_code)}")
        self._save_preferences()
        self._call_soon(self.bridge.change_source_language, lang_code)

    def toggle_translation(self):
        enabled = self.preferences.translation is None
        self.preferences = self.preferences.with_translation(enabled)
        logger.info(f"Translation: {'enabled' if enabled else 'disabled'}")
        self._save_preferences()
        self._call_soon(self.bridge.change_translation, enabled)

    def set_target_language(self, lang_code: str):
        translation = self.preferences.translation
        if translation is None or translation.target_lang == lang_code:
            return
        self.preferences = self.preferences.with_translation(True, target_lang=lang_code)
        logger.info(f"Translating to {get_language_name(lang_code)}")
        self._save_preferences()
        self._call_soon(self.bridge.change_translation, True, lang_code)

    def set_translation_model(self, model: str):
        translation = self.preferences.translation
        if translation is None or translation.translation_model == model:
            return
        self.preferences = self.preferences.with_translation(True, translation_model=model)
        logger.info(f"Translation model: {TRANSLATION_MODELS[model]['name']}")
        self._save_preferences()
        self._call_soon(self.bridge.change_translation, True, None, model)

    def quit(self, icon, item):
        """Exit the application."""
        logger.info("Exiting tray application")
        try:
            self._submit(self.bridge.shutdown()).result(timeout=10)
        except Exception as e:
            logger.error(f"Error stopping engine: {e}")
        self.loop.call_soon_threadsafe(self.loop.stop)
        icon.stop()

    # ==========================================================================
    # Menu
    # ==========================================================================

    def source_language_label(self) -> str:
        lang = self.preferences.source_lang
        if lang == AUTO_LANGUAGE and self.detected_language:
            return f"Source Language (Auto → {get_language_name(self.detected_language)})"
        return f"Source Language ({get_language_name(lang)})"

    def create_menu(self):
        """Create right-click context menu."""

        def model_item(model):
            return pystray.MenuItem(
                MODELS[model]["name"],
                lambda icon, item: self.set_model(model),
                checked=lambda item: self.preferences.model == model,
                radio=True,
            )

        def source_item(code):
            return pystray.MenuItem(
                get_language_name(code),
                lambda icon, item: self.set_source_language(code),
                checked=lambda item: self.preferences.source_lang == code,
                radio=True,
            )

        def target_item(code):
            return pystray.MenuItem(
                get_language_name(code),
                lambda icon, item: self.set_target_language(code),
                checked=lambda item: (
                    self.preferences.translation is not None
                    and self.preferences.translation.target_lang == code
                ),
                radio=True,
            )

        def translation_model_item(model):
            return pystray.MenuItem(
                TRANSLATION_MODELS[model]["name"],
                lambda icon, item: self.set_translation_model(model),
                checked=lambda item: (
                    self.preferences.translation is not None
                    and self.preferences.translation.translation_model == model
                ),
                radio=True,
            )

        def translation_enabled(item):
            return self.preferences.translation is not None

        return pystray.Menu(
            pystray.MenuItem(f"{APP_NAME} v{APP_VERSION}", None, enabled=False),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                lambda text: "● Running" if self.is_running() else f"○ {self.last_status}",
                None,
                enabled=False,
            ),
            pystray.MenuItem("Stop", self.on_click, visible=lambda item: self.is_running()),
            pystray.MenuItem("Start", self.on_click, visible=lambda item: not self.is_running()),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                lambda text: f"Model ({MODELS[self.preferences.model]['name']})",
                pystray.Menu(*[model_item(model) for model in MODELS]),
            ),
            pystray.MenuItem(
                lambda text: self.source_language_label(),
                pystray.Menu(
                    source_item(AUTO_LANGUAGE),
                    pystray.Menu.SEPARATOR,
                    *[source_item(code) for code in LANGUAGES],
                ),
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem(
                "🌐 Translation",
                lambda icon, item: self.toggle_translation(),
                checked=translation_enabled,
            ),
            pystray.MenuItem(
                "Translate To",
                pystray.Menu(*[target_item(code) for code in LANGUAGES]),
                visible=translation_enabled,
            ),
            pystray.MenuItem(
                "Translation Model",
                pystray.Menu(*[translation_model_item(model) for model in TRANSLATION_MODELS]),
                visible=translation_enabled,
            ),
            pystray.Menu.SEPARATOR,
            pystray.MenuItem("Exit", self.quit),
        )

    def run(self, auto_start: bool = True):
        """Run the tray application (blocks until quit)."""
        logger.info(f"Starting {APP_NAME} Tray")
        logger.info(f"Engine config: {self.preferences}")
        logger.info("Double-click icon to start/stop, right-click for options")

        self.start_loop()
        self._last_click_time = 0.0

        def on_activated(icon, item):
            """Left-click handler; a second click within 400ms toggles the engine."""
            now = time.time()
            double_click = now - self._last_click_time < 0.4
            self._last_click_time = now
            if double_click:
                self.on_click(icon, item)

        menu = self.create_menu()
        default_handler = pystray.MenuItem("", on_activated, default=True, visible=False)

        self.icon = pystray.Icon(
            name=APP_NAME,
            icon=self.create_icon_image(running=False),
            title=f"{APP_NAME} - Stopped",
            menu=pystray.Menu(default_handler, *menu.items),
        )

        if auto_start:
            self.start_captions()

        self.icon.run()


# ==============================================================================
# Headless Mode
# ==============================================================================


def log_event(event: OverlayEvent):
    text = describe_event(event)
    if text:
        logger.info(text)


async def run_headless(
    preferences: EngineConfig,
    engine_command: Sequence[str] | None = None,
    models_dir: Path | None = None,
    auto_start: bool = True,
):
    """Run the engine without a tray, logging captions until interrupted."""
    bridge = CaptionBridge(preferences, engine_command=engine_command, models_dir=models_dir)
    bridge.add_listener(log_event)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    if auto_start:
        await bridge.start()
    else:
        logger.info("Auto-start disabled, engine not started")
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        await bridge.shutdown()


# ==============================================================================
# Entry Point
# ==============================================================================


def print_models():
    """List speech models, translation models and languages."""
    print("\n" + "=" * 65)
    print("SPEECH MODELS (for --model NAME)")
    print("=" * 65)
    for model, description in list_models().items():
        print(f"  {model:<12} {description}")

    print("\n" + "=" * 65)
    print("TRANSLATION MODELS (for --translation-model NAME)")
    print("=" * 65)
    for model, description in list_translation_models().items():
        print(f"  {model:<12} {description}")

    print("\n" + "=" * 65)
    print("LANGUAGES (for -l CODE / --translate-to CODE)")
    print("=" * 65)
    print(f"  {AUTO_LANGUAGE:<12} Auto-detect (source only)")
    for code, name in LANGUAGES.items():
        print(f"  {code:<12} {name}")


def build_config(args: argparse.Namespace, preferences: EngineConfig) -> EngineConfig:
    """Apply command line overrides on top of saved preferences."""
    config = preferences
    if args.model:
        config = config.with_model(args.model)
    if args.language:
        config = config.with_source_language(args.language)
    if args.translate_to:
        config = config.with_translation(
            True, target_lang=args.translate_to, translation_model=args.translation_model
        )
    elif args.translation_model and config.translation:
        config = config.with_translation(True, translation_model=args.translation_model)
    return config


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} v{APP_VERSION}")
    parser.add_argument("--headless", action="store_true", help="Run without tray, log captions")
    parser.add_argument("--no-auto-start", action="store_true", help="Do not start the engine on launch")
    parser.add_argument("--model", choices=list(MODELS), help="Speech model")
    parser.add_argument("-l", "--language", help="Source language code or 'auto'")
    parser.add_argument("--translate-to", help="Enable translation into this language")
    parser.add_argument(
        "--translation-model", choices=list(TRANSLATION_MODELS), help="Translation model"
    )
    parser.add_argument("--engine", help="Path to the engine executable")
    parser.add_argument("--models-dir", type=Path, help="Directory holding model files")
    parser.add_argument("--list-models", action="store_true", help="List available models and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None):
    """Main entry point."""
    args = parse_args(argv)

    if args.list_models:
        print_models()
        return

    setup_logging("caption_overlay")
    if args.debug:
        set_log_level("DEBUG")

    preferences = load_settings()
    config = build_config(args, preferences)
    engine_command = [args.engine] if args.engine else None

    if args.headless:
        asyncio.run(
            run_headless(config, engine_command, args.models_dir, auto_start=not args.no_auto_start)
        )
        return

    _enable_dpi_awareness()
    app = CaptionTray(config, engine_command=engine_command, models_dir=args.models_dir)
    app.run(auto_start=not args.no_auto_start)


if __name__ == "__main__":
    sys.exit(main())
