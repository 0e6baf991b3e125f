"""
Caption Overlay - live speech caption overlay driven by an external engine.

Modules:
- config: Model/language definitions and runtime settings
- engine: Process supervisor, stream framer, event decoder, reconciler, router
- bridge: Wires the engine components together for a front end
- settings: Persisted user preferences
- tray: System tray front end and console mode

Usage:
    from caption_overlay import CaptionBridge, EngineConfig

    bridge = CaptionBridge(EngineConfig(model="base"))
    bridge.add_listener(print)
    await bridge.start()
"""

from .bridge import CaptionBridge
from .engine import EngineConfig, TranslationSettings

__all__ = [
    "CaptionBridge",
    "EngineConfig",
    "TranslationSettings",
]

__version__ = "1.0.0"
