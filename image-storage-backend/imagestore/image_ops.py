"""Image decoding, resizing and encoding.

This module wraps the Pillow operations behind a save: turning the incoming
payload into an image, working out the output size, and re-encoding it with
per-format compression settings. Everything here is synchronous and CPU
bound; :mod:`imagestore.storage` runs it in a worker thread.
"""

from __future__ import annotations

import base64
import binascii
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Any, Callable, Dict, Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError  # type: ignore[import]

from .errors import DecodeError, EncodeError, UnsupportedFormatError
from .models import OutputFormat

ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}


@dataclass
class DecodedImage:
    image: Image.Image
    width: int
    height: int
    format: Optional[str]


@dataclass
class EncodedImage:
    data: bytes
    width: int
    height: int


def strip_data_url(payload: str) -> str:
    """Drop a ``data:image/...;base64,`` prefix if present."""
    text = payload.strip()
    if text.startswith("data:") and "," in text:
        return text.split(",", 1)[1]
    return text


def payload_to_bytes(payload: Union[bytes, str]) -> bytes:
    """Return the raw image bytes for a bytes or base64 payload."""
    if isinstance(payload, bytes):
        return payload
    try:
        return base64.b64decode(strip_data_url(payload))
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Payload is not valid base64: {exc}") from exc


def payload_length(payload: Union[bytes, str]) -> int:
    """Length of the payload in its base64 text form."""
    if isinstance(payload, bytes):
        return 4 * math.ceil(len(payload) / 3)
    return len(strip_data_url(payload))


def decode_image(data: bytes) -> DecodedImage:
    """Parse ``data`` into a loaded Pillow image plus its intrinsic metadata.

    Any format Pillow can read is accepted; JPEG, PNG and WebP are the ones
    the store is built around. Animated inputs are reduced to their first
    frame.

    Raises:
        DecodeError: If the bytes are empty or not a recognised image.
    """
    if not data:
        raise DecodeError("Payload is empty")
    try:
        with Image.open(BytesIO(data)) as checked:
            checked.verify()
        img = Image.open(BytesIO(data))
        img.load()
    except Image.DecompressionBombError as exc:
        raise DecodeError(f"Image is too large to decode: {exc}") from exc
    except UnidentifiedImageError as exc:
        raise DecodeError("Payload is not a recognised image") from exc
    except (OSError, SyntaxError, ValueError) as exc:
        raise DecodeError(f"Image data is corrupt: {exc}") from exc
    source_format = img.format.lower() if img.format else None
    return DecodedImage(image=img, width=img.width, height=img.height, format=source_format)


def compute_target_size(
    width: int,
    height: int,
    target_width: Optional[int],
    maintain_aspect_ratio: bool = True,
) -> Tuple[int, int]:
    """Work out the output dimensions for a requested width.

    Images are never enlarged: a target at or above the original width keeps
    the original size. With the aspect ratio kept the height is rounded;
    otherwise it follows the single-axis default of scaling proportionally
    and truncating.
    """
    if target_width is None or target_width >= width:
        return width, height
    if maintain_aspect_ratio:
        return target_width, max(1, round(target_width * height / width))
    return target_width, max(1, int(height * target_width / width))


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ALPHA_MODES or (img.mode == "P" and "transparency" in img.info)


def _to_rgb(img: Image.Image) -> Image.Image:
    if img.mode == "RGB":
        return img
    if _has_alpha(img):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (0, 0, 0))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def _jpeg_params(img: Image.Image, quality: int) -> Tuple[Image.Image, Dict[str, Any]]:
    if img.mode not in ("RGB", "L"):
        img = _to_rgb(img)
    params = {
        "quality": quality,
        "optimize": True,
        "progressive": True,
        "subsampling": 0,  # 4:4:4
    }
    return img, params


def _png_palette(img: Image.Image, quality: int) -> Image.Image:
    """Quantise to a palette when it saves bytes.

    Images that already fit in 256 colours are converted losslessly. Below
    quality 100 the palette size shrinks with quality.
    """
    if img.mode in ("P", "1"):
        return img
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if _has_alpha(img) else "RGB")
    method = Image.Quantize.FASTOCTREE if img.mode == "RGBA" else Image.Quantize.MEDIANCUT
    if img.getcolors(256) is not None:
        return img.quantize(colors=256, method=method, dither=Image.Dither.NONE)
    if quality >= 100:
        return img
    colors = max(2, min(256, round(256 * quality / 100)))
    return img.quantize(colors=colors, method=method)


def _png_params(img: Image.Image, quality: int) -> Tuple[Image.Image, Dict[str, Any]]:
    if img.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
        img = img.convert("RGBA" if _has_alpha(img) else "RGB")
    img = _png_palette(img, quality)
    return img, {"optimize": True, "compress_level": 9}


def _webp_params(img: Image.Image, quality: int) -> Tuple[Image.Image, Dict[str, Any]]:
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if _has_alpha(img) else "RGB")
    return img, {"quality": quality, "method": 6, "lossless": False}


Encoder = Callable[[Image.Image, int], Tuple[Image.Image, Dict[str, Any]]]

ENCODERS: Dict[OutputFormat, Encoder] = {
    OutputFormat.JPEG: _jpeg_params,
    OutputFormat.PNG: _png_params,
    OutputFormat.WEBP: _webp_params,
}

_missing = set(OutputFormat) - set(ENCODERS)
if _missing:
    raise RuntimeError(f"No encoder registered for: {sorted(f.value for f in _missing)}")


def encode_options(
    img: Image.Image, output_format: Any, quality: int
) -> Tuple[Image.Image, Dict[str, Any]]:
    """Return the image prepared for ``output_format`` and its Pillow save params.

    Raises:
        UnsupportedFormatError: For anything other than jpeg, png or webp.
    """
    fmt = OutputFormat.parse(output_format)
    encoder = ENCODERS.get(fmt)
    if encoder is None:
        raise UnsupportedFormatError(output_format)
    return encoder(img, quality)


def transform_image(
    decoded: DecodedImage,
    *,
    target_width: Optional[int] = None,
    quality: int = 100,
    output_format: Any = OutputFormat.JPEG,
    maintain_aspect_ratio: bool = True,
) -> EncodedImage:
    """Resize (when asked) and re-encode a decoded image.

    Args:
        decoded: Result of :func:`decode_image`.
        target_width: Requested output width, or ``None`` to keep the size.
        quality: Encoder quality, 0-100.
        output_format: ``OutputFormat`` member or its string value.
        maintain_aspect_ratio: Derive the height from the width.

    Returns:
        The encoded bytes with the final dimensions.

    Raises:
        UnsupportedFormatError: For anything other than jpeg, png or webp.
        EncodeError: If Pillow's encoder refuses the image.
    """
    fmt = OutputFormat.parse(output_format)
    img = decoded.image
    new_size = compute_target_size(
        decoded.width, decoded.height, target_width, maintain_aspect_ratio
    )
    if new_size != img.size:
        if img.mode == "P":
            img = img.convert("RGBA" if _has_alpha(img) else "RGB")
        img = img.resize(new_size, Image.LANCZOS)
    prepared, params = encode_options(img, fmt, quality)
    buffer = BytesIO()
    try:
        prepared.save(buffer, format=fmt.pil_format, **params)
    except (OSError, ValueError) as exc:
        # Pillow reports encoder limits (e.g. WebP's 16383px cap) this way
        raise EncodeError(f"Cannot encode {prepared.width}x{prepared.height} image as {fmt.value}: {exc}") from exc
    return EncodedImage(data=buffer.getvalue(), width=prepared.width, height=prepared.height)
