"""Size reduction figures for a saved image.

Payloads usually arrive as base64 text, so the stored file is compared in the
same unit: its size is converted to an estimated base64 length with the
usual 4/3 expansion plus one byte of line padding per 96 input bytes. The
resulting percentage is an approximation meant for reporting.
"""

from __future__ import annotations

import math
from typing import Optional

from .models import ImageMetadata, OutputFormat


def estimate_base64_size(byte_size: int) -> float:
    return (byte_size * 4) / 3 + math.ceil(byte_size / 96)


def save_percentage(original_size: int, optimized_size: float) -> float:
    """Percentage saved relative to ``original_size``, rounded to 2 places."""
    if original_size <= 0:
        return 0.0
    return round((original_size - optimized_size) / original_size * 100, 2)


def compute_metrics(
    original_size: int,
    output_byte_size: int,
    *,
    width: int,
    height: int,
    source_format: Optional[str],
    output_format: OutputFormat,
    output_width: int,
    output_height: int,
) -> ImageMetadata:
    optimized_size = estimate_base64_size(output_byte_size)
    return ImageMetadata(
        original_size=original_size,
        optimized_size=optimized_size,
        save_percentage=save_percentage(original_size, optimized_size),
        width=width,
        height=height,
        format=source_format,
        output_format=output_format,
        output_width=output_width,
        output_height=output_height,
    )
