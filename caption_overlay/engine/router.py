"""Dispatch of engine events to the presentation layer."""

import contextlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .events import (
    EngineEvent,
    EngineExited,
    EngineLogLine,
    ErrorEvent,
    LanguageDetectedEvent,
    OverlayEvent,
    SpawnFailed,
    StatusEvent,
)

if TYPE_CHECKING:
    from .reconciler import ConfigReconciler

logger = logging.getLogger(__name__)

Listener = Callable[[OverlayEvent], None]


class EventRouter:
    """
    Forwards events to listeners in arrival order.

    Language detections are additionally fed to the reconciler. A listener
    that raises is logged and skipped; the others still get the event.
    """

    def __init__(self, reconciler: "ConfigReconciler | None" = None):
        self.reconciler = reconciler
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener):
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener):
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def route(self, event: EngineEvent):
        """Route a decoded engine event."""
        if isinstance(event, ErrorEvent):
            logger.error(f"Engine error: {event.message}")
        elif isinstance(event, StatusEvent):
            logger.info(f"Engine status: {event.message}")

        self._deliver(event)

        if isinstance(event, LanguageDetectedEvent) and self.reconciler is not None:
            self.reconciler.on_language_detected(event.language)

    def route_diagnostic(self, line: str):
        """Route a free-text stderr line."""
        logger.info(f"Engine: {line}")
        self._deliver(EngineLogLine(line=line))

    def route_exit(self, exited: EngineExited):
        """Route a process exit; crashes also produce an error event."""
        self._deliver(exited)
        if exited.crashed:
            self._deliver(ErrorEvent(message=f"Engine exited unexpectedly (code {exited.code})"))

    def route_warning(self, message: str):
        """Route a configuration warning as a status message."""
        self._deliver(StatusEvent(message=f"⚠️ {message}"))

    def route_spawn_failed(self, error: Exception):
        """Route a failed engine launch."""
        self._deliver(SpawnFailed(message=str(error)))
        self._deliver(ErrorEvent(message=f"Engine failed to start: {error}"))

    def _deliver(self, event: OverlayEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener failed handling {event.kind} event")
