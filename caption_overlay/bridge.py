"""
Caption Bridge

Wires the engine supervisor, reconciler and router together and exposes
the boundary a front end talks to:

  front end --change_model / change_source_language / change_translation--> bridge
  bridge --TranscriptionEvent / TranslationEvent / StatusEvent / ErrorEvent / ...--> listeners

Must be used from a single asyncio event loop. Front ends running on other
threads submit calls with loop.call_soon_threadsafe().
"""

from collections.abc import Sequence
from pathlib import Path

from .config import get_model_config, get_translation_model_config
from .engine import (
    ConfigReconciler,
    EngineConfig,
    EngineSupervisor,
    EventRouter,
    RestartReason,
    SupervisorState,
)
from .engine.router import Listener


class CaptionBridge:
    """Single entry point for driving the caption engine."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        engine_command: Sequence[str] | None = None,
        models_dir: Path | None = None,
        debounce_s: float | None = None,
        stop_grace_s: float | None = None,
    ):
        """
        Initialize the bridge.

        Args:
            config: Initial engine configuration (defaults if None)
            engine_command: Engine executable and fixed leading args
            models_dir: Directory holding model weights
            debounce_s: Quiet window for coalescing config changes
            stop_grace_s: Seconds between SIGTERM and kill
        """
        self.router = EventRouter()
        self.supervisor = EngineSupervisor(
            on_event=self.router.route,
            on_diagnostic=self.router.route_diagnostic,
            on_exit=self.router.route_exit,
            engine_command=engine_command,
            models_dir=models_dir,
            stop_grace_s=stop_grace_s,
        )
        self.reconciler = ConfigReconciler(
            self.supervisor,
            config or EngineConfig(),
            debounce_s=debounce_s,
            on_spawn_failed=self.router.route_spawn_failed,
            on_warning=self.router.route_warning,
        )
        self.router.reconciler = self.reconciler

    @property
    def config(self) -> EngineConfig:
        """Latest requested configuration."""
        return self.reconciler.target_config

    @property
    def applied_config(self) -> EngineConfig:
        return self.reconciler.current_config

    @property
    def state(self) -> SupervisorState:
        return self.supervisor.state

    @property
    def is_running(self) -> bool:
        return self.supervisor.is_running

    def add_listener(self, listener: Listener):
        self.router.add_listener(listener)

    def remove_listener(self, listener: Listener):
        self.router.remove_listener(listener)

    async def start(self):
        """Start the engine with the current configuration."""
        await self.reconciler.start()

    async def shutdown(self):
        """Stop the engine and drop pending changes."""
        await self.reconciler.shutdown()

    def request_change(self, new_config: EngineConfig) -> bool:
        """
        Request a user configuration change.

        Raises:
            KeyError: If the config names an unknown model.

        Returns:
            True if the change was accepted (a restart will follow). Soft
            problems such as translating into the source language are
            reported as warning StatusEvents and do not block the change.
        """
        get_model_config(new_config.model)
        if new_config.translation:
            get_translation_model_config(new_config.translation.translation_model)

        return self.reconciler.request_change(new_config, RestartReason.USER_CHANGE)

    def change_model(self, model: str) -> bool:
        return self.request_change(self.config.with_model(model))

    def change_source_language(self, source_lang: str) -> bool:
        return self.request_change(self.config.with_source_language(source_lang))

    def change_translation(
        self,
        enabled: bool,
        target_lang: str | None = None,
        translation_model: str | None = None,
    ) -> bool:
        """
        Enable, disable or retarget translation.

        Args:
            enabled: Whether translation should run
            target_lang: Language to translate into
            translation_model: Translation model id
        """
        return self.request_change(
            self.config.with_translation(enabled, target_lang, translation_model)
        )
