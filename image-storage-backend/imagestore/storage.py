"""Filesystem storage for optimised images.

:class:`ImageStorage` is the single entry point used by the API. It writes
files under a root directory fixed at construction and returns URLs rooted
at ``/<prefix>/`` (``/uploads/`` by default), which the FastAPI app serves as
static files.

Layout on disk is ``<root>/<sub_directory>/<filename>.<ext>``, one file per
image with no sidecar metadata. Files are written to a temporary name in the
target directory and renamed into place, so readers never see a partial
file. Two saves to the same path race; the last rename wins.

Environment variables (see :mod:`imagestore.config`):
    UPLOAD_DIR: Root directory (default './uploads').
    UPLOAD_URL_PREFIX: URL prefix (default 'uploads').
    UPLOAD_DIR_MODE: Permissions for created directories (default '777').
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import secrets
import tempfile
import time
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from . import config
from .errors import (
    ImageStorageError,
    InvalidRequestError,
    StorageIOError,
    TargetExistsError,
    UnsupportedFormatError,
)
from .image_ops import decode_image, payload_length, payload_to_bytes, transform_image
from .metrics import compute_metrics
from .models import FileInfo, SaveRequest, SaveResult, check_filename, normalize_sub_directory

logger = logging.getLogger(__name__)

IMAGE_NAME_RE = re.compile(r"\.(jpg|jpeg|png|webp)$", re.IGNORECASE)
FILE_MODE = 0o644


def generate_unique_filename(extension: Optional[str] = None) -> str:
    """Return ``<epoch-ms>-<16 random hex chars>`` with an optional extension."""
    name = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"
    if extension:
        return f"{name}.{extension.lstrip('.')}"
    return name


def ensure_dir(path: str, mode: int = 0o777) -> None:
    """Create ``path`` and any missing parents, then apply ``mode``.

    Safe to call concurrently; an existing directory is not an error. The
    chmod is best effort because the directory may belong to another user.
    """
    os.makedirs(path, exist_ok=True)
    try:
        os.chmod(path, mode)
    except PermissionError as exc:
        logger.debug("Could not chmod %s: %s", path, exc)


def _request_error(exc: ValidationError) -> ImageStorageError:
    """Map a pydantic failure on ``SaveRequest`` to one of our error types."""
    for error in exc.errors():
        loc = error.get("loc") or ()
        if loc and loc[0] in ("output_format", "outputFormat", "format"):
            raw = error.get("input")
            return UnsupportedFormatError(raw)
    details = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ())) or 'request'}: {err.get('msg')}"
        for err in exc.errors()
    )
    return InvalidRequestError(f"Invalid save request: {details}")


def coerce_request(request: Union[SaveRequest, Mapping[str, Any]]) -> SaveRequest:
    """Build a :class:`SaveRequest` from a mapping, raising our own error types."""
    if isinstance(request, SaveRequest):
        return request
    try:
        return SaveRequest.model_validate(request)
    except ValidationError as exc:
        raise _request_error(exc) from exc


class ImageStorage:
    """Save, delete and list optimised images under a single root directory."""

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        url_prefix: Optional[str] = None,
        dir_mode: Optional[int] = None,
    ) -> None:
        self.upload_dir = upload_dir if upload_dir is not None else config.UPLOAD_DIR
        prefix = url_prefix if url_prefix is not None else config.UPLOAD_URL_PREFIX
        self.url_prefix = prefix.strip("/")
        self.dir_mode = dir_mode if dir_mode is not None else config.UPLOAD_DIR_MODE

    def _directory(self, sub_directory: str) -> str:
        try:
            sub = normalize_sub_directory(sub_directory or "")
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc
        return os.path.join(self.upload_dir, *sub.split("/")) if sub else self.upload_dir

    def _url(self, sub_directory: str, stored_filename: str) -> str:
        parts = [self.url_prefix, sub_directory, stored_filename]
        return "/" + "/".join(part for part in parts if part).replace("\\", "/")

    def _write_atomic(self, directory: str, file_path: str, data: bytes, overwrite: bool) -> None:
        fd, temp_path = tempfile.mkstemp(prefix=".upload-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            # mkstemp creates 0600; the static file server needs read access
            os.chmod(temp_path, FILE_MODE)
            if overwrite:
                os.replace(temp_path, file_path)
            else:
                try:
                    os.link(temp_path, file_path)
                except FileExistsError as exc:
                    raise TargetExistsError(file_path) from exc
        finally:
            if os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError as exc:
                    logger.warning("Could not remove temporary file %s: %s", temp_path, exc)

    def save_sync(self, request: Union[SaveRequest, Mapping[str, Any]]) -> SaveResult:
        """Blocking version of :meth:`save`."""
        try:
            req = coerce_request(request)
            directory = self._directory(req.sub_directory)
            ensure_dir(directory, self.dir_mode)

            decoded = decode_image(payload_to_bytes(req.payload))
            filename = req.filename or generate_unique_filename()
            stored_filename = f"{filename}.{req.output_format.extension}"
            file_path = os.path.join(directory, stored_filename)

            encoded = transform_image(
                decoded,
                target_width=req.target_width,
                quality=req.quality,
                output_format=req.output_format,
                maintain_aspect_ratio=req.maintain_aspect_ratio,
            )
            self._write_atomic(directory, file_path, encoded.data, req.overwrite)
            size = os.stat(file_path).st_size
        except ImageStorageError as exc:
            logger.warning("Image save rejected (%s): %s", exc.code, exc)
            return SaveResult.failure(exc)
        except OSError as exc:
            logger.exception("Image save failed on storage")
            return SaveResult.failure(StorageIOError.from_os_error(exc))
        except Exception as exc:
            logger.exception("Image save failed unexpectedly")
            return SaveResult.failure(StorageIOError(f"Unexpected error: {exc}"))

        metadata = compute_metrics(
            payload_length(req.payload),
            size,
            width=decoded.width,
            height=decoded.height,
            source_format=decoded.format,
            output_format=req.output_format,
            output_width=encoded.width,
            output_height=encoded.height,
        )
        relative_path = "/".join(part for part in (req.sub_directory, stored_filename) if part)
        file_info = FileInfo(
            filename=filename,
            stored_filename=stored_filename,
            file_path=file_path,
            full_path=os.path.abspath(file_path),
            relative_path=relative_path,
            url=self._url(req.sub_directory, stored_filename),
            size=size,
        )
        logger.info(
            "Saved %s (%d bytes, %dx%d -> %dx%d, %.2f%% saved)",
            relative_path,
            size,
            decoded.width,
            decoded.height,
            encoded.width,
            encoded.height,
            metadata.save_percentage,
        )
        return SaveResult.ok(file_info, metadata)

    def delete_sync(self, filename: str, sub_directory: str = "") -> bool:
        """Blocking version of :meth:`delete`."""
        try:
            check_filename(filename)
            file_path = os.path.join(self._directory(sub_directory), filename)
            os.unlink(file_path)
        except FileNotFoundError:
            return False
        except (ValueError, ImageStorageError, OSError) as exc:
            logger.warning("Could not delete %s in %r: %s", filename, sub_directory, exc)
            return False
        logger.info("Deleted %s", file_path)
        return True

    def list_images_sync(self, sub_directory: str = "") -> List[str]:
        """Blocking version of :meth:`list_images`."""
        try:
            directory = self._directory(sub_directory)
            names = os.listdir(directory)
        except FileNotFoundError:
            return []
        except (ImageStorageError, OSError) as exc:
            logger.warning("Could not list images in %r: %s", sub_directory, exc)
            return []
        return sorted(
            name
            for name in names
            if IMAGE_NAME_RE.search(name) and os.path.isfile(os.path.join(directory, name))
        )

    async def save(self, request: Union[SaveRequest, Mapping[str, Any]]) -> SaveResult:
        """Decode, resize, re-encode and store an image.

        Never raises for bad input or storage failures; those come back as a
        failed :class:`SaveResult` whose ``error_code`` tells them apart. The
        work runs in a worker thread so concurrent requests are not blocked.
        """
        return await asyncio.to_thread(self.save_sync, request)

    async def delete(self, filename: str, sub_directory: str = "") -> bool:
        """Remove a stored file. Returns False if it is missing or cannot be removed."""
        return await asyncio.to_thread(self.delete_sync, filename, sub_directory)

    async def list_images(self, sub_directory: str = "") -> List[str]:
        """Names of jpg/jpeg/png/webp files in ``sub_directory``, or [] if absent."""
        return await asyncio.to_thread(self.list_images_sync, sub_directory)
