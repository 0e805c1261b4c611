"""Image selection intake: validation and data URI encoding.

The file-picking widget and the bundled example asset both hand over a
:class:`RawImage`.  :class:`ImageIngestor` validates the declared media type
before doing anything else, so a rejected selection never disturbs the one
already held.  Encoding runs off the event loop; until it resolves the held
selection has no preview and is not ready for submission.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .errors import InvalidFormat

logger = logging.getLogger(__name__)

EXAMPLE_ASSET_PATH = Path(__file__).with_name("assets").joinpath("example.png")


@dataclass(frozen=True)
class RawImage:
    data: bytes
    mime_type: str
    name: Optional[str] = None


@dataclass(frozen=True)
class ImageSelection:
    raw_bytes: bytes
    mime_type: str
    name: Optional[str] = None
    encoded_preview: Optional[str] = None

    @property
    def ready(self) -> bool:
        return bool(self.encoded_preview)

    @property
    def size(self) -> int:
        return len(self.raw_bytes)


def encode_data_uri(data: bytes, mime_type: str) -> str:
    payload = base64.b64encode(data).decode("ascii")
    return f"data:{mime_type};base64,{payload}"


def validate(raw: RawImage) -> None:
    mime_type = raw.mime_type.strip().lower() if isinstance(raw.mime_type, str) else ""
    if not mime_type.startswith("image/"):
        raise InvalidFormat(f"Expected an image media type, got {raw.mime_type!r}")
    if not isinstance(raw.data, (bytes, bytearray)) or not raw.data:
        raise InvalidFormat("Image selection is empty")


def read_image_file(path: Path) -> RawImage:
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    return RawImage(
        data=path.read_bytes(),
        mime_type=mime_type or "application/octet-stream",
        name=path.name,
    )


def load_example_asset(path: Path = EXAMPLE_ASSET_PATH) -> RawImage:
    """Read the bundled example photo and present it like a user-picked file."""

    return read_image_file(path)


class ImageIngestor:
    """Holds the single active selection and its encoded preview."""

    def __init__(self) -> None:
        self._current: Optional[ImageSelection] = None
        self._generation = 0

    @property
    def current(self) -> Optional[ImageSelection]:
        return self._current

    @property
    def ready(self) -> bool:
        return self._current is not None and self._current.ready

    async def select(self, raw: RawImage) -> ImageSelection:
        validate(raw)

        self._generation += 1
        token = self._generation
        pending = ImageSelection(
            raw_bytes=bytes(raw.data),
            mime_type=raw.mime_type.strip().lower(),
            name=raw.name,
        )
        self._current = pending

        preview = await asyncio.to_thread(encode_data_uri, pending.raw_bytes, pending.mime_type)
        if token != self._generation:
            logger.debug("discarding preview for superseded selection %s", pending.name)
            return pending

        selection = replace(pending, encoded_preview=preview)
        self._current = selection
        logger.info(
            "selected %s (%s, %d bytes)",
            selection.name or "<unnamed>",
            selection.mime_type,
            selection.size,
        )
        return selection

    def clear(self) -> None:
        self._generation += 1
        if self._current is not None:
            logger.debug("cleared selection %s", self._current.name)
        self._current = None


__all__ = [
    "EXAMPLE_ASSET_PATH",
    "ImageIngestor",
    "ImageSelection",
    "RawImage",
    "encode_data_uri",
    "load_example_asset",
    "read_image_file",
    "validate",
]
