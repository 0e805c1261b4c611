from __future__ import annotations

import io
import random
from pathlib import Path
import sys

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storybook_magic.ingest import RawImage


def _noise_image(size: int, seed: int) -> Image.Image:
    rng = random.Random(seed)
    pixels = bytes(rng.getrandbits(8) for _ in range(size * size * 3))
    return Image.frombytes("RGB", (size, size), pixels)


@pytest.fixture(scope="session")
def jpeg_bytes() -> bytes:
    # 64x64 of noise at this quality lands around 10KB
    buffer = io.BytesIO()
    _noise_image(64, seed=7).save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


@pytest.fixture(scope="session")
def png_bytes() -> bytes:
    buffer = io.BytesIO()
    _noise_image(8, seed=3).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def jpeg_image(jpeg_bytes: bytes) -> RawImage:
    return RawImage(data=jpeg_bytes, mime_type="image/jpeg", name="child.jpg")
