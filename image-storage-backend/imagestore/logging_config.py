"""Process logging for the image storage service.

Library modules only create ``logging.getLogger(__name__)`` loggers. The
FastAPI lifespan in ``main.py`` calls :func:`setup_logging` once at startup.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE = "imagestore.log"


def setup_logging(level: str = "INFO", log_dir: str = "logs") -> None:
    """Send log records to stderr and to ``<log_dir>/imagestore.log``.

    Does nothing if the root logger already has handlers, e.g. when uvicorn
    or a test runner configured logging first. An unwritable ``log_dir``
    only disables the file log.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    handlers: list = [logging.StreamHandler()]
    file_error = None
    try:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                os.path.join(log_dir, LOG_FILE), maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
        )
    except OSError as exc:
        file_error = exc

    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, handlers=handlers)
    if file_error is not None:
        logging.getLogger(__name__).warning("File logging disabled for %s: %s", log_dir, file_error)
