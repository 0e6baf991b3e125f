"""
Engine Events

Typed records decoded from the engine's stdout line protocol, plus the
signals the supervisor itself produces.

Protocol (one JSON object per line):
  {"type": "transcription", "data": {"text": "...", "timestamp": 1700000000}}
  {"type": "translation", "data": {"text": "...", "original": "...", "timestamp": ...}}
  {"type": "language_detected", "data": {"language": "fr"}}
  {"type": "status", "data": {"message": "..."}}
  {"type": "error", "data": {"message": "..."}}

Anything else is a decode failure and is dropped.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Union

logger = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Raised when a line is not a recognised engine event."""


# ==============================================================================
# Engine events (wire protocol)
# ==============================================================================


@dataclass(frozen=True)
class TranscriptionEvent:
    """Recognised speech."""

    kind: ClassVar[str] = "transcription"

    text: str
    timestamp: int | None = None


@dataclass(frozen=True)
class TranslationEvent:
    """Translated speech, with the recognised text it came from."""

    kind: ClassVar[str] = "translation"

    original: str
    text: str
    timestamp: int | None = None


@dataclass(frozen=True)
class LanguageDetectedEvent:
    kind: ClassVar[str] = "language_detected"

    language: str


@dataclass(frozen=True)
class StatusEvent:
    kind: ClassVar[str] = "status"

    message: str


@dataclass(frozen=True)
class ErrorEvent:
    kind: ClassVar[str] = "error"

    message: str


EngineEvent = Union[
    TranscriptionEvent, TranslationEvent, LanguageDetectedEvent, StatusEvent, ErrorEvent
]


# ==============================================================================
# Supervisor signals (never decoded from the wire)
# ==============================================================================


@dataclass(frozen=True)
class EngineLogLine:
    """Free-text diagnostic line from the engine's stderr."""

    kind: ClassVar[str] = "log"

    line: str


@dataclass(frozen=True)
class EngineExited:
    """
    Engine process exit.

    Attributes:
        code: Process return code (negative for a signal on POSIX)
        requested: True when the exit followed a stop() call
    """

    kind: ClassVar[str] = "exited"

    code: int | None
    requested: bool

    @property
    def crashed(self) -> bool:
        return not self.requested


@dataclass(frozen=True)
class SpawnFailed:
    """The engine binary could not be launched."""

    kind: ClassVar[str] = "spawn_failed"

    message: str


OverlayEvent = Union[EngineEvent, EngineLogLine, EngineExited, SpawnFailed]


# ==============================================================================
# Decoding
# ==============================================================================


def _require_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"Field '{key}' missing or not a string")
    return value


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def decode_line(line: str) -> EngineEvent:
    """
    Parse one protocol line into an event.

    Args:
        line: A single line from the engine's stdout (no newline)

    Returns:
        The decoded event.

    Raises:
        DecodeError: If the line is not valid JSON, not an object, has an
            unknown type, or lacks a required field.
    """
    try:
        record = json.loads(line)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Not JSON: {e}") from e

    if not isinstance(record, dict):
        raise DecodeError("Record is not an object")

    kind = record.get("type")
    data = record.get("data")
    if not isinstance(data, dict):
        raise DecodeError("Field 'data' missing or not an object")

    if kind == TranscriptionEvent.kind:
        return TranscriptionEvent(
            text=_require_str(data, "text"), timestamp=_optional_int(data, "timestamp")
        )
    if kind == TranslationEvent.kind:
        return TranslationEvent(
            original=_require_str(data, "original"),
            text=_require_str(data, "text"),
            timestamp=_optional_int(data, "timestamp"),
        )
    if kind == LanguageDetectedEvent.kind:
        return LanguageDetectedEvent(language=_require_str(data, "language"))
    if kind == StatusEvent.kind:
        return StatusEvent(message=_require_str(data, "message"))
    if kind == ErrorEvent.kind:
        return ErrorEvent(message=_require_str(data, "message"))

    raise DecodeError(f"Unknown event type: {kind!r}")


class EventDecoder:
    """
    Best-effort decoder for a single engine instance.

    Malformed lines are logged and counted, never raised.
    """

    def __init__(self):
        self.decoded = 0
        self.failures = 0

    def decode(self, line: str) -> EngineEvent | None:
        """
        Decode a line, dropping anything unrecognised.

        Returns:
            The event, or None for blank or malformed lines.
        """
        if not line.strip():
            return None

        try:
            event = decode_line(line)
        except DecodeError as e:
            self.failures += 1
            logger.debug(f"Dropped engine line ({e}): {line[:200]!r}")
            return None

        self.decoded += 1
        return event
