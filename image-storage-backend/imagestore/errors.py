"""Error types raised inside the image storage pipeline.

Every operation of :class:`imagestore.storage.ImageStorage` catches these at
its boundary and turns them into its own result shape, so callers normally
only see the ``code`` carried on a failed :class:`SaveResult`.
"""

from __future__ import annotations

from typing import Any


class ImageStorageError(Exception):
    """Base exception for the storage pipeline."""

    code = "storage_error"
    client_error = False


class DecodeError(ImageStorageError):
    """Raised when a payload is not a recognised still image."""

    code = "decode_error"
    client_error = True


class EncodeError(ImageStorageError):
    """Raised when the encoder refuses an image, e.g. one too large for WebP."""

    code = "encode_error"
    client_error = True


class UnsupportedFormatError(ImageStorageError, ValueError):
    """Raised when the requested output format is not jpeg, png or webp."""

    code = "unsupported_format"
    client_error = True

    def __init__(self, value: Any):
        super().__init__(f"Unsupported format: {value}")
        self.value = value


class InvalidRequestError(ImageStorageError, ValueError):
    """Raised for malformed save options, e.g. a path escaping the upload root."""

    code = "invalid_request"
    client_error = True


class TargetExistsError(ImageStorageError):
    """Raised when overwrite is disabled and the target file already exists."""

    code = "conflict"
    client_error = True

    def __init__(self, path: str):
        super().__init__(f"File already exists: {path}")
        self.path = path


class StorageIOError(ImageStorageError):
    """Raised when the underlying filesystem fails."""

    code = "storage_error"

    @classmethod
    def from_os_error(cls, exc: OSError) -> "StorageIOError":
        reason = exc.strerror or str(exc)
        if exc.filename:
            return cls(f"{reason}: {exc.filename}")
        return cls(reason)
