"""Image store package.

Decodes uploaded images, optionally resizes them, re-encodes them as JPEG,
PNG or WebP and keeps them on the local filesystem. ``ImageStorage`` in
:mod:`imagestore.storage` is the public entry point; see the individual
modules for the decoding, encoding and metrics details.
"""

from .errors import (
    DecodeError,
    EncodeError,
    ImageStorageError,
    InvalidRequestError,
    StorageIOError,
    TargetExistsError,
    UnsupportedFormatError,
)
from .models import FileInfo, ImageMetadata, OutputFormat, SaveRequest, SaveResult
from .storage import ImageStorage, ensure_dir, generate_unique_filename

__all__ = [
    "DecodeError",
    "EncodeError",
    "FileInfo",
    "ImageMetadata",
    "ImageStorage",
    "ImageStorageError",
    "InvalidRequestError",
    "OutputFormat",
    "SaveRequest",
    "SaveResult",
    "StorageIOError",
    "TargetExistsError",
    "UnsupportedFormatError",
    "ensure_dir",
    "generate_unique_filename",
]
