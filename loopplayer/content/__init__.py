"""Image entries, their resources and the ordered collection."""

from .models import (
    MAX_IMAGES,
    MIN_INTERVAL_MS,
    MAX_INTERVAL_MS,
    DEFAULT_INTERVAL_MS,
    DurableEntry,
    ImageEntry,
    ImageHandle,
    ImportFile,
    SessionSnapshot,
    clamp_interval,
)

__all__ = [
    "MAX_IMAGES",
    "MIN_INTERVAL_MS",
    "MAX_INTERVAL_MS",
    "DEFAULT_INTERVAL_MS",
    "DurableEntry",
    "ImageEntry",
    "ImageHandle",
    "ImportFile",
    "SessionSnapshot",
    "clamp_interval",
]
