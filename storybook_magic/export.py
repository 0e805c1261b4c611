"""Turn a remote result reference into a local downloadable file."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
import uuid
import webbrowser
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote, urlparse

import requests
from PIL import Image, UnidentifiedImageError

from .errors import ExportFailed, ExportInProgress

logger = logging.getLogger(__name__)

_EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp", "GIF": "gif"}
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class ExportedArtifact:
    source_url: str
    path: Optional[Path] = None
    opened_externally: bool = False
    abandoned: bool = False


def _stem_from_url(url: str) -> str:
    name = Path(unquote(urlparse(url).path)).stem
    cleaned = _UNSAFE_NAME.sub("-", name).strip("-.")
    return cleaned or "storybook-page"


def _identify_extension(path: Path) -> str:
    try:
        with Image.open(path) as img:
            fmt = img.format or ""
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ExportFailed(f"Downloaded content is not a readable image: {exc}") from exc
    except Exception as exc:
        # Pillow plugins raise assorted errors on corrupt payloads.
        raise ExportFailed(f"Image decoder failed on downloaded content: {exc}") from exc
    return _EXTENSIONS.get(fmt.upper(), fmt.lower() or "img")


class ResultExporter:
    """Download the generated page, or open it directly when that fails.

    The primary path writes into a temporary ``.part`` file inside
    ``download_dir``, checks it decodes as an image, then renames it into
    place.  The temporary file is removed on every exit path.  Any failure
    on that path falls back to ``opener`` (a new browser tab by default).
    """

    def __init__(
        self,
        download_dir: Path,
        *,
        timeout: float = 30.0,
        opener: Callable[[str], bool] = webbrowser.open_new_tab,
    ) -> None:
        self.download_dir = Path(download_dir)
        self.timeout = float(timeout)
        self._opener = opener
        self._in_progress = False
        self._token = 0

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def abandon(self) -> None:
        if self._in_progress:
            logger.debug("abandoning in-flight export")
        self._token += 1
        self._in_progress = False

    async def export(self, url: str) -> ExportedArtifact:
        if self._in_progress:
            raise ExportInProgress("An export is already in progress")
        self._in_progress = True
        token = self._token
        try:
            try:
                path = await asyncio.to_thread(self.download, url)
            except ExportFailed as exc:
                if token != self._token:
                    return ExportedArtifact(source_url=url, abandoned=True)
                logger.warning("download of %s failed (%s); opening it directly", url, exc)
                await asyncio.to_thread(self.open_external, url)
                artifact = ExportedArtifact(source_url=url, opened_externally=True)
            else:
                artifact = ExportedArtifact(source_url=url, path=path)
        finally:
            if token == self._token:
                self._in_progress = False

        if token != self._token:
            return replace(artifact, abandoned=True)
        return artifact

    def fetch(self, url: str) -> bytes:
        try:
            response = requests.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise ExportFailed(f"Could not retrieve {url}") from exc
        blob = response.content
        if not blob:
            raise ExportFailed(f"Empty response body from {url}")
        return blob

    def download(self, url: str) -> Path:
        blob = self.fetch(url)
        try:
            self.download_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".storybook-", suffix=".part", dir=self.download_dir)
        except OSError as exc:
            raise ExportFailed(f"Cannot write into {self.download_dir}") from exc

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
            extension = _identify_extension(tmp_path)
            target = self.download_dir / f"{_stem_from_url(url)}_{uuid.uuid4().hex[:8]}.{extension}"
            os.replace(tmp_path, target)
        except OSError as exc:
            raise ExportFailed(f"Cannot materialize {url}") from exc
        finally:
            tmp_path.unlink(missing_ok=True)

        logger.info("downloaded %s -> %s (%d bytes)", url, target, len(blob))
        return target

    def open_external(self, url: str) -> None:
        try:
            opened = self._opener(url)
        except webbrowser.Error as exc:
            raise ExportFailed(f"Could not open {url}") from exc
        if opened is False:
            raise ExportFailed(f"No viewer available to open {url}")
        logger.info("opened %s in a new viewing context", url)


__all__ = ["ExportedArtifact", "ResultExporter"]
