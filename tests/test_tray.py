"""
Unit tests for caption_overlay.tray system tray front end.

Tests the CaptionTray class and helper functions including:
- Event rendering
- Tray state updates from engine events
- Preference changes forwarded to the bridge
- Command line parsing and overrides
"""

import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from caption_overlay.engine import (
    EngineConfig,
    EngineExited,
    EngineLogLine,
    ErrorEvent,
    LanguageDetectedEvent,
    StatusEvent,
    TranscriptionEvent,
    TranslationEvent,
)


# Mock GUI dependencies before importing
@pytest.fixture(autouse=True)
def mock_dependencies():
    """Mock pystray and Pillow before imports."""
    mock_pystray = MagicMock()
    mock_pil = MagicMock()
    mock_pil_draw = MagicMock()

    mock_image = MagicMock()
    mock_image.new.return_value = MagicMock()

    mock_pil.Image = mock_image
    mock_pil.ImageDraw = mock_pil_draw

    with patch.dict(
        sys.modules,
        {
            "pystray": mock_pystray,
            "PIL": mock_pil,
            "PIL.Image": mock_image,
            "PIL.ImageDraw": mock_pil_draw,
        },
    ):
        yield {
            "pystray": mock_pystray,
            "Image": mock_image,
            "ImageDraw": mock_pil_draw,
        }


@pytest.fixture
def tray_app(mock_dependencies):
    """CaptionTray with the bridge loop replaced by a mock."""
    from caption_overlay.tray import CaptionTray

    app = CaptionTray(EngineConfig(), persist=False)
    app.loop.close()
    app.loop = MagicMock()
    app.icon = MagicMock()
    return app


class TestDescribeEvent:
    """Tests for describe_event function."""

    def test_transcription(self, mock_dependencies):
        """Test transcriptions render their text."""
        from caption_overlay.tray import describe_event

        assert describe_event(TranscriptionEvent(text="hello")) == "📝 hello"

    def test_translation_shows_original(self, mock_dependencies):
        """Test translations show both the translation and the original."""
        from caption_overlay.tray import describe_event

        text = describe_event(TranslationEvent(original="hello", text="bonjour"))
        assert "bonjour" in text
        assert "hello" in text

    def test_language_detected_uses_name(self, mock_dependencies):
        """Test detected language codes are shown by name."""
        from caption_overlay.tray import describe_event

        assert describe_event(LanguageDetectedEvent(language="fr")).endswith("French")

    def test_error(self, mock_dependencies):
        """Test errors are rendered with their message."""
        from caption_overlay.tray import describe_event

        assert describe_event(ErrorEvent(message="boom")) == "❌ boom"

    def test_log_lines_hidden(self, mock_dependencies):
        """Test engine log lines are not rendered."""
        from caption_overlay.tray import describe_event

        assert describe_event(EngineLogLine(line="[Main] hi")) is None
        assert describe_event(EngineExited(code=0, requested=True)) is None


class TestCaptionTrayEvents:
    """Tests for CaptionTray.on_engine_event."""

    def test_caption_updates(self, tray_app):
        """Test transcriptions and translations update the last caption."""
        tray_app.on_engine_event(TranscriptionEvent(text="hello"))
        assert tray_app.last_caption == "hello"

        tray_app.on_engine_event(TranslationEvent(original="hello", text="bonjour"))
        assert tray_app.last_caption == "bonjour"

    def test_status_updates(self, tray_app):
        """Test status messages are remembered for the tooltip."""
        tray_app.on_engine_event(StatusEvent(message="Listening"))
        assert tray_app.last_status == "Listening"

    def test_error_notifies(self, tray_app):
        """Test errors are shown as notifications."""
        tray_app.on_engine_event(ErrorEvent(message="Engine exited unexpectedly (code 3)"))

        tray_app.icon.notify.assert_called_once_with(
            "Engine exited unexpectedly (code 3)", "Caption engine error"
        )
        assert tray_app.last_status == "Engine exited unexpectedly (code 3)"

    def test_notify_failure_is_tolerated(self, tray_app):
        """Test platforms without notifications do not break event handling."""
        tray_app.icon.notify.side_effect = NotImplementedError
        tray_app.on_engine_event(ErrorEvent(message="boom"))
        assert tray_app.last_status == "boom"

    def test_exit_clears_caption(self, tray_app):
        """Test the caption is cleared when the engine exits."""
        tray_app.last_caption = "old"
        tray_app.on_engine_event(EngineExited(code=0, requested=True))
        assert tray_app.last_caption == ""

    def test_detected_language_in_menu_label(self, tray_app):
        """Test the source language label shows the detected language."""
        tray_app.on_engine_event(LanguageDetectedEvent(language="de"))
        assert tray_app.source_language_label() == "Source Language (Auto → German)"

    def test_log_lines_do_not_redraw(self, tray_app):
        """Test engine log lines leave the icon alone."""
        tray_app.icon.reset_mock()
        tray_app.on_engine_event(EngineLogLine(line="[Main] Starting up..."))
        tray_app.icon.notify.assert_not_called()
        assert tray_app.last_status == "Stopped"


class TestCaptionTrayTooltip:
    """Tests for tooltip text."""

    def test_stopped(self, tray_app):
        """Test tooltip when the engine is not running."""
        assert tray_app.tooltip() == "Caption Overlay - Stopped"

    def test_running_with_translation(self, tray_app):
        """Test tooltip shows model, languages and latest caption."""
        tray_app.bridge = MagicMock()
        tray_app.bridge.is_running = True
        tray_app.bridge.config = EngineConfig(model="small", source_lang="fr").with_translation(
            True, target_lang="en"
        )
        tray_app.last_caption = "hello"

        tooltip = tray_app.tooltip()

        assert tooltip.startswith("Caption Overlay - Whisper Small (French) → English")
        assert tooltip.endswith("\nhello")

    def test_length_limit(self, tray_app):
        """Test tooltip is truncated to the platform limit."""
        from caption_overlay.tray import TOOLTIP_LIMIT

        tray_app.bridge = MagicMock()
        tray_app.bridge.is_running = True
        tray_app.bridge.config = EngineConfig()
        tray_app.last_caption = "x" * 500

        assert len(tray_app.tooltip()) == TOOLTIP_LIMIT


class TestCaptionTrayActions:
    """Tests for preference changes from the menu."""

    def test_set_model_forwards_to_bridge(self, tray_app):
        """Test choosing a model updates preferences and schedules a bridge change."""
        tray_app.set_model("small")

        assert tray_app.preferences.model == "small"
        tray_app.loop.call_soon_threadsafe.assert_called_once_with(
            tray_app.bridge.change_model, "small"
        )

    def test_set_same_model_is_noop(self, tray_app):
        """Test choosing the current model does nothing."""
        tray_app.set_model("base")
        tray_app.loop.call_soon_threadsafe.assert_not_called()

    def test_set_source_language_resets_detection(self, tray_app):
        """Test a manual language choice clears the detected language."""
        tray_app.detected_language = "fr"
        tray_app.set_source_language("es")

        assert tray_app.detected_language is None
        assert tray_app.preferences.source_lang == "es"
        tray_app.loop.call_soon_threadsafe.assert_called_once_with(
            tray_app.bridge.change_source_language, "es"
        )

    def test_choosing_auto_after_detection_reaches_bridge(self, tray_app):
        """Test re-selecting auto is forwarded once detection switched the engine language."""
        tray_app.bridge = MagicMock()
        tray_app.bridge.config = EngineConfig().with_source_language("fr")

        tray_app.set_source_language("auto")

        assert tray_app.preferences.source_lang == "auto"
        tray_app.loop.call_soon_threadsafe.assert_called_once_with(
            tray_app.bridge.change_source_language, "auto"
        )

    def test_choosing_current_language_is_noop(self, tray_app):
        """Test selecting the language both preferences and engine already use does nothing."""
        tray_app.set_source_language("auto")
        tray_app.loop.call_soon_threadsafe.assert_not_called()

    def test_toggle_translation(self, tray_app):
        """Test toggling translation on and off."""
        tray_app.toggle_translation()
        assert tray_app.preferences.translation is not None

        tray_app.toggle_translation()
        assert tray_app.preferences.translation is None

        calls = tray_app.loop.call_soon_threadsafe.call_args_list
        assert [c.args[1] for c in calls] == [True, False]

    def test_target_language_requires_translation(self, tray_app):
        """Test the target language is only changed while translating."""
        tray_app.set_target_language("de")
        tray_app.loop.call_soon_threadsafe.assert_not_called()

        tray_app.toggle_translation()
        tray_app.set_target_language("de")

        assert tray_app.preferences.translation.target_lang == "de"
        tray_app.loop.call_soon_threadsafe.assert_called_with(
            tray_app.bridge.change_translation, True, "de"
        )

    def test_set_translation_model(self, tray_app):
        """Test changing the translation model keeps the target language."""
        tray_app.toggle_translation()
        tray_app.set_translation_model("mt5-base")

        assert tray_app.preferences.translation.translation_model == "mt5-base"
        tray_app.loop.call_soon_threadsafe.assert_called_with(
            tray_app.bridge.change_translation, True, None, "mt5-base"
        )

    def test_preferences_saved_when_persisting(self, tray_app):
        """Test preference changes are written to the settings file."""
        tray_app.persist = True
        with patch("caption_overlay.tray.save_settings") as mock_save:
            tray_app.set_model("tiny")

        mock_save.assert_called_once_with(tray_app.preferences)

    def test_on_click_toggles(self, tray_app):
        """Test clicking starts a stopped engine and stops a running one."""
        with patch("asyncio.run_coroutine_threadsafe") as mock_submit:
            tray_app.on_click()
            assert tray_app.last_status == "Starting..."

            tray_app.bridge = MagicMock()
            tray_app.bridge.is_running = True
            tray_app.on_click()
            assert tray_app.last_status == "Stopped"

        assert mock_submit.call_count == 2
        mock_submit.call_args_list[0].args[0].close()


class TestBuildConfig:
    """Tests for command line parsing and overrides."""

    def test_no_overrides(self, mock_dependencies):
        """Test saved preferences are used when no flags are given."""
        from caption_overlay.tray import build_config, parse_args

        saved = EngineConfig(model="small")
        assert build_config(parse_args([]), saved) == saved

    def test_overrides(self, mock_dependencies):
        """Test flags override model, language and translation."""
        from caption_overlay.tray import build_config, parse_args

        args = parse_args(
            ["--model", "medium", "-l", "fr", "--translate-to", "en", "--translation-model", "t5-small"]
        )
        config = build_config(args, EngineConfig())

        assert config.model == "medium"
        assert config.source_lang == "fr"
        assert config.translation.target_lang == "en"
        assert config.translation.translation_model == "t5-small"

    def test_translation_model_alone_needs_translation(self, mock_dependencies):
        """Test --translation-model without translation enabled changes nothing."""
        from caption_overlay.tray import build_config, parse_args

        args = parse_args(["--translation-model", "mt5-base"])
        assert build_config(args, EngineConfig()).translation is None

    def test_invalid_model_rejected(self, mock_dependencies):
        """Test argparse rejects unknown models."""
        from caption_overlay.tray import parse_args

        with pytest.raises(SystemExit):
            parse_args(["--model", "gigantic"])

    def test_headless_main(self, mock_dependencies):
        """Test --headless runs the console loop instead of the tray."""
        from caption_overlay import tray

        with (
            patch.object(tray, "setup_logging"),
            patch.object(tray, "load_settings", return_value=EngineConfig()),
            patch.object(tray, "run_headless", new=MagicMock()) as mock_headless,
            patch.object(tray.asyncio, "run") as mock_run,
            patch.object(tray, "CaptionTray") as mock_tray,
        ):
            tray.main(["--headless", "--engine", "/opt/engine", "--model", "tiny"])

        mock_run.assert_called_once()
        mock_headless.assert_called_once_with(
            EngineConfig(model="tiny"), ["/opt/engine"], None, auto_start=True
        )
        mock_tray.assert_not_called()

    def test_headless_main_without_auto_start(self, mock_dependencies):
        """Test --no-auto-start is honoured in console mode."""
        from caption_overlay import tray

        with (
            patch.object(tray, "setup_logging"),
            patch.object(tray, "load_settings", return_value=EngineConfig()),
            patch.object(tray, "run_headless", new=MagicMock()) as mock_headless,
            patch.object(tray.asyncio, "run"),
        ):
            tray.main(["--headless", "--no-auto-start"])

        assert mock_headless.call_args.kwargs == {"auto_start": False}

    def test_list_models(self, mock_dependencies, capsys):
        """Test --list-models prints the catalogues and exits without starting anything."""
        from caption_overlay import tray

        with (
            patch.object(tray, "setup_logging") as mock_logging,
            patch.object(tray, "CaptionTray") as mock_tray,
            patch.object(tray.asyncio, "run") as mock_run,
        ):
            tray.main(["--list-models"])

        out = capsys.readouterr().out
        assert "SPEECH MODELS" in out
        assert "TRANSLATION MODELS" in out
        assert "mt5-small" in out
        assert "French" in out
        mock_logging.assert_not_called()
        mock_tray.assert_not_called()
        mock_run.assert_not_called()


class TestRunHeadless:
    """Tests for the console loop."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("auto_start", [True, False])
    async def test_auto_start(self, mock_dependencies, auto_start):
        """Test the engine is only started on launch when auto-start is on."""
        from caption_overlay import tray

        bridge = MagicMock()
        bridge.start = AsyncMock()
        bridge.shutdown = AsyncMock()

        with patch.object(tray, "CaptionBridge", return_value=bridge):
            task = asyncio.ensure_future(tray.run_headless(EngineConfig(), auto_start=auto_start))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert bridge.start.await_count == (1 if auto_start else 0)
        bridge.shutdown.assert_awaited_once()
