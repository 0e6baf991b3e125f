"""Engine bridge: supervisor, line framing, event decoding, reconciliation and routing."""

from .events import (
    DecodeError,
    EngineEvent,
    EngineExited,
    EngineLogLine,
    ErrorEvent,
    EventDecoder,
    LanguageDetectedEvent,
    OverlayEvent,
    SpawnFailed,
    StatusEvent,
    TranscriptionEvent,
    TranslationEvent,
    decode_line,
)
from .framer import LineFramer, iter_lines
from .models import EngineConfig, TranslationSettings, build_engine_args
from .reconciler import ConfigReconciler, RestartReason, RestartRequest
from .router import EventRouter
from .supervisor import EngineSupervisor, SpawnError, SupervisorBusyError, SupervisorState

__all__ = [
    "ConfigReconciler",
    "DecodeError",
    "EngineConfig",
    "EngineEvent",
    "EngineExited",
    "EngineLogLine",
    "EngineSupervisor",
    "ErrorEvent",
    "EventDecoder",
    "EventRouter",
    "LanguageDetectedEvent",
    "LineFramer",
    "OverlayEvent",
    "RestartReason",
    "RestartRequest",
    "SpawnError",
    "SpawnFailed",
    "StatusEvent",
    "SupervisorBusyError",
    "SupervisorState",
    "TranscriptionEvent",
    "TranslationEvent",
    "TranslationSettings",
    "build_engine_args",
    "decode_line",
    "iter_lines",
]
