"""
Session persistence for LoopPlayer.

Core Components:
- PlayerEventEmitter: event bus carrying snapshot/index/playback changes
- KeyValueStore: async get/put contract (JsonFileStore, MemoryStore)
- SessionPersistence: debounced writer and one-shot startup loader
"""

from .events import (
    PlayerEventType,
    PlayerEvent,
    PlayerEventEmitter,
)

__all__ = [
    "PlayerEventType",
    "PlayerEvent",
    "PlayerEventEmitter",
]
