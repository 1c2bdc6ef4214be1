"""Resource lifecycle for image entries.

Two-phase handling, like a decode-to-RAM cache:
- durable form: a ``data:`` URL built from the raw bytes (persisted)
- transient form: an :class:`ImageHandle` holding decoded RGBA pixels (never
  persisted, released explicitly)

Decoding runs in a worker thread so playback callbacks on the event loop are
never stalled by a large image. Handles are registered only after every step
succeeded, so a failed import never leaves an orphaned handle behind.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import itertools
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from ..errors import DecodeFailed
from .models import ImageEntry, ImageHandle, ImportFile

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = "data:"
_BASE64_MARKER = ";base64,"


def _decode_pixels(data: bytes, *, name: str = "") -> tuple[np.ndarray, Optional[str]]:
    """Decode image bytes into an RGBA uint8 array.

    Returns:
        (pixels, pil_format) where pil_format is e.g. "PNG" or None

    Raises:
        DecodeFailed: If Pillow cannot interpret the bytes
    """
    if not data:
        raise DecodeFailed("Empty image data", name=name)
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            pil_format = img.format
            rgba = img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, PILImage.DecompressionBombError) as exc:
        raise DecodeFailed(f"Not a decodable image: {name or '<bytes>'} ({exc})", name=name) from exc
    pixels = np.array(rgba, dtype=np.uint8)
    rgba.close()
    return pixels, pil_format


def _guess_mime(pil_format: Optional[str], name: str, declared: str) -> str:
    if pil_format:
        mime = PILImage.MIME.get(pil_format.upper())
        if mime:
            return mime
    guessed, _ = mimetypes.guess_type(name)
    if guessed:
        return guessed
    return declared or "application/octet-stream"


def encode_data_url(data: bytes, mime_type: str) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"{_DATA_URL_PREFIX}{mime_type}{_BASE64_MARKER}{payload}"


def decode_data_url(durable_content: str) -> bytes:
    """Return the raw bytes carried by a base64 ``data:`` URL.

    Raises:
        DecodeFailed: If the string is not a base64 data URL
    """
    if not isinstance(durable_content, str) or not durable_content.startswith(_DATA_URL_PREFIX):
        raise DecodeFailed("Durable content is not a data URL")
    header, sep, payload = durable_content.partition(",")
    if not sep or not header.endswith(_BASE64_MARKER[:-1]):
        raise DecodeFailed("Durable content is not base64-encoded")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeFailed(f"Corrupt base64 payload: {exc}") from exc


def read_import_files(paths: Iterable[Path]) -> list[ImportFile]:
    """Read raw bytes for each path; unreadable files are logged and skipped."""
    files: list[ImportFile] = []
    for path in paths:
        path = Path(path)
        try:
            files.append(ImportFile(name=path.name, data=path.read_bytes()))
        except OSError as exc:
            logger.warning("Cannot read %s: %s", path, exc)
    return files


def _import_bytes(data: bytes, name: str, declared_mime: str) -> tuple[str, np.ndarray]:
    pixels, pil_format = _decode_pixels(data, name=name)
    durable = encode_data_url(data, _guess_mime(pil_format, name, declared_mime))
    return durable, pixels


def _materialize_bytes(durable_content: str) -> np.ndarray:
    pixels, _ = _decode_pixels(decode_data_url(durable_content))
    return pixels


class ResourceManager:
    """Creates, tracks and releases transient image handles.

    Every handle produced by :meth:`import_file` or :meth:`materialize` is
    tracked until :meth:`release` (entry removal) or :meth:`release_all`
    (teardown) frees it. Releasing twice, or releasing an unknown handle,
    does nothing.
    """

    def __init__(self) -> None:
        self._live: dict[int, ImageHandle] = {}
        self._ids = itertools.count(1)
        self._released_total = 0

    @property
    def live_count(self) -> int:
        return len(self._live)

    @property
    def released_total(self) -> int:
        return self._released_total

    def is_live(self, handle: ImageHandle) -> bool:
        return self._live.get(handle.handle_id) is handle

    def _register(self, pixels: np.ndarray) -> ImageHandle:
        height, width = pixels.shape[:2]
        handle = ImageHandle(handle_id=next(self._ids), width=width, height=height, pixels=pixels)
        self._live[handle.handle_id] = handle
        logger.debug("Registered handle %d (%dx%d), live=%d", handle.handle_id, width, height, len(self._live))
        return handle

    async def import_file(self, data: bytes, name: str, mime_type: str = "") -> ImageEntry:
        """Turn raw uploaded bytes into an entry with durable and transient forms.

        Raises:
            DecodeFailed: If the bytes are not a decodable image
        """
        durable, pixels = await asyncio.to_thread(_import_bytes, bytes(data), name, mime_type)
        handle = self._register(pixels)
        entry = ImageEntry(
            id=uuid.uuid4().hex,
            display_name=name,
            durable_content=durable,
            handle=handle,
        )
        logger.info("Imported %s as %s (%dx%d)", name, entry.id, handle.width, handle.height)
        return entry

    async def materialize(self, durable_content: str) -> ImageHandle:
        """Re-derive a renderable handle from persisted durable content.

        Raises:
            DecodeFailed: If the content cannot be decoded
        """
        pixels = await asyncio.to_thread(_materialize_bytes, durable_content)
        return self._register(pixels)

    def release(self, handle: Optional[ImageHandle]) -> bool:
        """Release *handle*; returns True only when it was live."""
        if handle is None or not self.is_live(handle):
            return False
        del self._live[handle.handle_id]
        handle.pixels = None
        self._released_total += 1
        logger.debug("Released handle %d, live=%d", handle.handle_id, len(self._live))
        return True

    def release_all(self) -> int:
        """Release every live handle (teardown path)."""
        handles = list(self._live.values())
        for handle in handles:
            self.release(handle)
        if handles:
            logger.info("Released %d live handle(s) at teardown", len(handles))
        return len(handles)
