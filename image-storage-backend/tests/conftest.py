"""Shared fixtures for the image store tests.

Images are generated in memory with Pillow. ``photo_bytes`` builds a noisy
gradient with numpy so the encoders see something closer to a photograph
than a flat colour block.
"""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from imagestore.storage import ImageStorage


def photo_image(width: int, height: int, seed: int = 0) -> Image.Image:
    rng = np.random.default_rng(seed)
    xx, yy = np.meshgrid(np.linspace(0, 1, width), np.linspace(0, 1, height))
    base = np.stack([xx * 255, yy * 255, (1 - xx) * yy * 255], axis=-1)
    noise = rng.normal(0, 12, size=(height, width, 3))
    return Image.fromarray(np.clip(base + noise, 0, 255).astype(np.uint8))


def encode(img: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


def photo_bytes(width: int, height: int, fmt: str = "JPEG", seed: int = 0, **params) -> bytes:
    if fmt == "JPEG":
        params.setdefault("quality", 95)
    return encode(photo_image(width, height, seed), fmt, **params)


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def storage(upload_dir):
    return ImageStorage(str(upload_dir), url_prefix="uploads")
