"""LoopPlayer: cyclic image playback with session persistence."""

__app_name__ = "LoopPlayer"
__version__ = "1.0.0"

__all__ = ["__app_name__", "__version__"]
