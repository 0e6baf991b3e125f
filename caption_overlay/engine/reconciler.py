"""
Configuration Reconciler

Every configuration change, whether it comes from the user or from the
engine's own language detection, goes through request_change(). Bursts of
requests are coalesced over a quiet window; only the last one is applied,
with a stop -> wait for STOPPED -> apply -> start sequence. Requests that
arrive while a sequence is running are deferred until it completes, so at
most one engine is ever starting.
"""

import asyncio
import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from caption_overlay.config import AUTO_LANGUAGE, RESTART_DEBOUNCE_S

from .models import EngineConfig
from .supervisor import EngineSupervisor, SpawnError, SupervisorBusyError, SupervisorState

logger = logging.getLogger(__name__)


class RestartReason(enum.Enum):
    USER_CHANGE = "user_change"
    AUTO_DETECTED = "auto_detected"


@dataclass(frozen=True)
class RestartRequest:
    """A requested configuration, superseded by any later request."""

    reason: RestartReason
    new_config: EngineConfig
    requested_at: float = field(default_factory=time.monotonic)


class ConfigReconciler:
    """
    Serializes configuration changes into engine restarts.

    Usage:
        reconciler = ConfigReconciler(supervisor, EngineConfig(model="base"))
        await reconciler.start()
        reconciler.request_change(reconciler.target_config.with_model("small"))
    """

    def __init__(
        self,
        supervisor: EngineSupervisor,
        initial_config: EngineConfig,
        debounce_s: float | None = None,
        on_spawn_failed: Callable[[SpawnError], None] | None = None,
        on_warning: Callable[[str], None] | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            supervisor: Supervisor driving the engine process
            initial_config: Configuration applied at startup
            debounce_s: Quiet window before a change is executed
            on_spawn_failed: Callback when a (re)start fails to launch the engine
            on_warning: Callback for soft configuration problems (the change still proceeds)
        """
        self.supervisor = supervisor
        self.debounce_s = RESTART_DEBOUNCE_S if debounce_s is None else debounce_s
        self.on_spawn_failed = on_spawn_failed
        self.on_warning = on_warning
        self.restart_count = 0

        self._applied = initial_config
        self._pending: RestartRequest | None = None
        self._in_flight: RestartRequest | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._active = False

    @property
    def current_config(self) -> EngineConfig:
        """Configuration currently applied to the engine."""
        return self._applied

    @property
    def target_config(self) -> EngineConfig:
        """Most recently requested configuration (applied, in flight or pending)."""
        if self._pending is not None:
            return self._pending.new_config
        if self._in_flight is not None:
            return self._in_flight.new_config
        return self._applied

    @property
    def pending(self) -> RestartRequest | None:
        return self._pending

    @property
    def is_restarting(self) -> bool:
        """True while a stop -> start sequence is running."""
        return self._task is not None

    @property
    def active(self) -> bool:
        """True between start() and shutdown()."""
        return self._active

    def request_change(
        self, new_config: EngineConfig, reason: RestartReason = RestartReason.USER_CHANGE
    ) -> bool:
        """
        Request a new engine configuration.

        Args:
            new_config: Full replacement configuration
            reason: Origin of the request

        Returns:
            True if the request was recorded, False if it changes nothing.
        """
        if new_config == self.target_config:
            logger.debug(f"Config unchanged ({new_config}), ignoring request")
            return False

        superseded = self._pending
        self._pending = RestartRequest(reason=reason, new_config=new_config)
        if superseded is not None:
            logger.debug(f"Superseded pending config {superseded.new_config}")
        logger.info(f"Config change requested ({reason.value}): {new_config}")
        self._warn(new_config)

        if self._task is not None:
            logger.info("Restart in progress, change deferred until it completes")
            return True

        self._arm_timer()
        return True

    def on_language_detected(self, language: str) -> bool:
        """
        Feed an engine language detection back into the configuration.

        Only acts while the source language is 'auto'; once the detected
        language is applied further detections are ignored.

        Returns:
            True if a change was requested.
        """
        target = self.target_config
        if not target.auto_detect:
            logger.debug(
                f"Ignoring detected language '{language}' (source language is {target.source_lang})"
            )
            return False
        if not language or language == AUTO_LANGUAGE:
            return False

        logger.info(f"Engine detected language: {language}")
        return self.request_change(
            target.with_source_language(language), RestartReason.AUTO_DETECTED
        )

    async def start(self) -> None:
        """
        Start the engine with the applied configuration if it is stopped.

        If a previous engine is still stopping, waits for it to exit first.
        A shutdown() issued while waiting wins.
        """
        self._active = True
        if self._task is not None:
            return

        if self.supervisor.state is SupervisorState.STOPPING:
            logger.info("Waiting for the previous engine to exit before starting")
            await self.supervisor.wait_stopped()
            if not self._active or self._task is not None:
                return

        if self.supervisor.state is not SupervisorState.STOPPED:
            return

        self._warn(self._applied)
        await self._start_engine(self._applied)

    async def shutdown(self) -> None:
        """
        Drop pending changes and stop the engine.

        A start() issued while this waits for the exit takes over: the
        reconciler stays active and that start spawns a new engine.
        """
        self._active = False
        self._cancel_timer()
        self._pending = None

        task = self._task
        if task is not None:
            await task
            if self._active:
                logger.info("Started again during shutdown, keeping the engine running")
                return

        self.supervisor.stop()
        await self.supervisor.wait_stopped()

    # ==========================================================================
    # Scheduling
    # ==========================================================================

    def _arm_timer(self):
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_s, self._on_quiet)

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_quiet(self):
        """Debounce window elapsed without a newer request."""
        self._timer = None
        request = self._pending
        if request is None or self._task is not None:
            return

        self._pending = None

        if request.new_config == self._applied:
            logger.info("Config change reverted within debounce window, nothing to do")
            return

        if not self._active:
            logger.info(f"Engine not active, applying config without restart: {request.new_config}")
            self._applied = request.new_config
            return

        self._task = asyncio.get_running_loop().create_task(self._restart(request))

    async def _restart(self, request: RestartRequest):
        self._in_flight = request
        try:
            logger.info(
                f"Restarting engine ({request.reason.value}): {self._applied} -> {request.new_config}"
            )
            self.supervisor.stop()
            await self.supervisor.wait_stopped()

            self._applied = request.new_config
            self.restart_count += 1
            await self._start_engine(request.new_config)
        finally:
            self._in_flight = None
            self._task = None

        if self._pending is not None and self._active:
            self._arm_timer()

    async def _start_engine(self, config: EngineConfig):
        try:
            await self.supervisor.start(config)
        except SpawnError as e:
            logger.error(f"Engine failed to start: {e}")
            if self.on_spawn_failed:
                self.on_spawn_failed(e)
        except SupervisorBusyError as e:
            logger.warning(f"Engine not started: {e}")

    def _warn(self, config: EngineConfig):
        """Report soft problems with a config; they never block it."""
        for warning in config.warnings():
            logger.warning(warning)
            if self.on_warning:
                self.on_warning(warning)
