"""Environment driven settings for the image storage service.

Values are read once at import time, the same way the rest of the backend
resolves its directories.

Environment variables:
    UPLOAD_DIR: Root directory for stored images (default './uploads').
    UPLOAD_URL_PREFIX: URL path segment the root is served under
        (default 'uploads', giving URLs like '/uploads/<sub>/<file>').
    UPLOAD_DIR_MODE: Octal permissions applied to created directories
        (default '777' so the static file server can read them).
    CORS_ORIGINS: Comma separated list of allowed browser origins.
    MAX_BODY_BYTES: Largest accepted request body (default 50 MB).
    TEMP_URL_TTL_SECONDS: How long saved URLs stay in the recent list.
    RECENT_URLS_MAX: Most URLs kept in the recent list (default 1000).
    LOG_LEVEL / LOG_DIR: Logging level and directory for the rotating log.
    PORT: Port used when running main.py directly (default 3001).
"""

from __future__ import annotations

import os
from typing import List

DEFAULT_CORS_ORIGINS = [
    "https://bank.ocean00.com",
    "https://www.bank.ocean00.com",
    "https://image.ocean00.com",
    "http://localhost:3000",
    "http://localhost:3001",
]


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_mode(raw: str) -> int:
    try:
        return int(raw, 8)
    except ValueError as exc:
        raise RuntimeError(f"UPLOAD_DIR_MODE must be an octal number, got {raw!r}") from exc


UPLOAD_DIR: str = os.getenv("UPLOAD_DIR", "./uploads")
UPLOAD_URL_PREFIX: str = os.getenv("UPLOAD_URL_PREFIX", "uploads").strip("/")
UPLOAD_DIR_MODE: int = _parse_mode(os.getenv("UPLOAD_DIR_MODE", "777"))
CORS_ORIGINS: List[str] = _split_csv(os.getenv("CORS_ORIGINS", "")) or DEFAULT_CORS_ORIGINS
MAX_BODY_BYTES: int = int(os.getenv("MAX_BODY_BYTES", str(50 * 1024 * 1024)))
TEMP_URL_TTL_SECONDS: float = float(os.getenv("TEMP_URL_TTL_SECONDS", "3600"))
RECENT_URLS_MAX: int = int(os.getenv("RECENT_URLS_MAX", "1000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR: str = os.getenv("LOG_DIR", "logs")
PORT: int = int(os.getenv("PORT", "3001"))
