"""Pydantic models and data schemas for the image store.

``SaveRequest`` is the fully enumerated set of options accepted by
:meth:`imagestore.storage.ImageStorage.save`; unknown fields are rejected
instead of being silently ignored. The response models serialise with the
camelCase keys the frontend already consumes (``fileInfo``, ``savePercentage``
and so on).
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .errors import ImageStorageError, UnsupportedFormatError


class OutputFormat(str, Enum):
    """Closed set of formats the store can encode to."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"

    @classmethod
    def parse(cls, value: Any) -> "OutputFormat":
        """Return the member for ``value`` or raise :class:`UnsupportedFormatError`."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            key = FORMAT_ALIASES.get(key, key)
            for member in cls:
                if member.value == key:
                    return member
        raise UnsupportedFormatError(value)

    @property
    def extension(self) -> str:
        return self.value

    @property
    def pil_format(self) -> str:
        return self.name


FORMAT_ALIASES = {"jpg": "jpeg"}

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SaveRequest(CamelModel):
    """Options for a single save.

    Attributes:
        payload: Encoded image, either raw bytes or base64 text (a
            ``data:image/...;base64,`` prefix is accepted and stripped).
        target_width: Resize to this width when set; never enlarges.
        quality: Encoder quality, 0-100.
        output_format: ``jpeg``, ``png`` or ``webp`` (``jpg`` is accepted as
            an alias for ``jpeg``).
        maintain_aspect_ratio: Derive the height from the width when resizing.
        sub_directory: Relative directory under the upload root.
        filename: Base name without extension. A unique name is generated
            when omitted.
        overwrite: Replace an existing file with the same name. When false
            the save fails with a ``conflict`` error instead.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    payload: Union[bytes, str] = Field(repr=False)
    target_width: Optional[int] = Field(
        None, gt=0, validation_alias=AliasChoices("target_width", "targetWidth", "width")
    )
    quality: int = Field(100, ge=0, le=100)
    output_format: OutputFormat = Field(
        OutputFormat.JPEG,
        validation_alias=AliasChoices("output_format", "outputFormat", "format"),
    )
    maintain_aspect_ratio: bool = True
    sub_directory: str = ""
    filename: Optional[str] = None
    overwrite: bool = True

    @field_validator("output_format", mode="before")
    @classmethod
    def _parse_format(cls, value: Any) -> OutputFormat:
        return OutputFormat.parse(value)

    @field_validator("sub_directory", mode="before")
    @classmethod
    def _check_sub_directory(cls, value: Any) -> str:
        if value is None:
            return ""
        if not isinstance(value, str):
            raise ValueError("sub_directory must be a string")
        return normalize_sub_directory(value)

    @field_validator("filename", mode="before")
    @classmethod
    def _check_filename(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValueError("filename must be a string")
        check_filename(value)
        return value


def normalize_sub_directory(value: str) -> str:
    """Return ``value`` as a clean relative POSIX path.

    Raises:
        ValueError: If the path is absolute or climbs out with ``..``.
    """
    raw = value.replace("\\", "/").strip()
    if raw.startswith("/") or _DRIVE_RE.match(raw):
        raise ValueError(f"sub_directory must be relative: {value!r}")
    parts = [part for part in PurePosixPath(raw).parts if part not in ("", ".")]
    if ".." in parts:
        raise ValueError(f"sub_directory must not contain '..': {value!r}")
    return "/".join(parts)


def check_filename(value: str) -> None:
    """Reject names that are empty, contain separators, or are dot entries."""
    if not value.strip():
        raise ValueError("filename must not be blank")
    if any(sep in value for sep in ("/", "\\", "\x00")):
        raise ValueError(f"filename must not contain path separators: {value!r}")
    if value in (".", ".."):
        raise ValueError(f"invalid filename: {value!r}")


class FileInfo(CamelModel):
    """Where a saved image lives and how to reach it."""

    filename: str
    stored_filename: str
    file_path: str
    full_path: str
    relative_path: str
    url: str
    size: int


class ImageMetadata(CamelModel):
    """Size and dimension figures reported after a save.

    ``optimized_size`` is the estimated base64 length of the stored file, so
    ``save_percentage`` compares like with like against a base64 payload. It
    is an approximation for reporting, not an exact wire measurement.
    """

    original_size: int
    optimized_size: float
    save_percentage: float
    width: int
    height: int
    format: Optional[str] = None
    output_format: OutputFormat
    output_width: int
    output_height: int


class SaveResult(CamelModel):
    """Outcome of a save: either ``file_info`` + ``metadata`` or ``error``."""

    success: bool
    file_info: Optional[FileInfo] = None
    metadata: Optional[ImageMetadata] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "SaveResult":
        if self.success:
            if self.file_info is None or self.metadata is None or self.error is not None:
                raise ValueError("a successful result carries file_info and metadata only")
        elif self.error is None or self.file_info is not None or self.metadata is not None:
            raise ValueError("a failed result carries an error only")
        return self

    @classmethod
    def ok(cls, file_info: FileInfo, metadata: ImageMetadata) -> "SaveResult":
        return cls(success=True, file_info=file_info, metadata=metadata)

    @classmethod
    def failure(cls, exc: ImageStorageError) -> "SaveResult":
        return cls(success=False, error=str(exc), error_code=exc.code)

    @property
    def is_client_error(self) -> bool:
        """True when the failure was caused by the request, not by storage."""
        return not self.success and self.error_code != "storage_error"


class UploadRequest(BaseModel):
    """Body of ``POST /api/saveImage``."""

    image: str = Field(repr=False)
    type: str
    username: str


class UploadResponse(BaseModel):
    url: str


class ImageListResponse(BaseModel):
    images: List[str]


class DeleteResponse(BaseModel):
    deleted: bool
