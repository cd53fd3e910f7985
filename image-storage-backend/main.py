"""FastAPI entrypoint for the image storage service.

The HTTP layer is thin: it turns requests into ``SaveRequest`` options,
hands them to :class:`imagestore.storage.ImageStorage` and maps the result
onto a status code. Stored files are served back from the upload root.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from imagestore import config
from imagestore.cache import TTLCache
from imagestore.logging_config import setup_logging
from imagestore.models import (
    DeleteResponse,
    ImageListResponse,
    SaveResult,
    UploadRequest,
    UploadResponse,
)
from imagestore.storage import ImageStorage, ensure_dir

logger = logging.getLogger(__name__)

# Upload types accepted by /api/saveImage and the options they are saved with.
UPLOAD_TYPES = {"WITHDRAW", "DEPOSIT"}
UPLOAD_SAVE_OPTIONS = {"target_width": 1200, "quality": 80, "output_format": "webp"}

router = APIRouter()


def _status_for(result: SaveResult) -> int:
    if result.success:
        return 201
    if result.error_code == "conflict":
        return 409
    return 400 if result.is_client_error else 500


def _remember(request: Request, result: SaveResult) -> None:
    if result.success and result.file_info is not None:
        request.app.state.recent_urls.set(result.file_info.url, datetime.now().isoformat())


# --- Health ---
@router.get("/")
async def health_check():
    return {"success": "success"}


# --- Uploads ---
@router.post("/api/saveImage", status_code=201, response_model=UploadResponse)
async def save_image_endpoint(body: UploadRequest, request: Request):
    """Store a WITHDRAW or DEPOSIT slip for a user.

    Slips are filed under ``<TYPE>/<dd-MM-yyyy>`` and named
    ``<username>-<TYPE>-<dd-MM-yyyy HH-mm-ss>``, resized to 1200px wide and
    stored as WebP.
    """
    upload_type = body.type.strip().upper()
    if upload_type not in UPLOAD_TYPES:
        return JSONResponse({"error": f"Unsupported upload type '{body.type}'."}, status_code=400)
    now = datetime.now()
    options = dict(
        UPLOAD_SAVE_OPTIONS,
        payload=body.image,
        sub_directory=f"{upload_type}/{now:%d-%m-%Y}",
        filename=f"{body.username}-{upload_type}-{now:%d-%m-%Y %H-%M-%S}",
    )
    result = await request.app.state.storage.save(options)
    if not result.success:
        return JSONResponse({"error": result.error}, status_code=_status_for(result))
    _remember(request, result)
    return {"url": result.file_info.url}


@router.post("/api/images")
async def save_generic_image(request: Request, options: Dict[str, Any] = Body(...)):
    """Save with a full set of options; the body mirrors ``SaveRequest``."""
    result = await request.app.state.storage.save(options)
    _remember(request, result)
    return JSONResponse(
        result.model_dump(mode="json", by_alias=True, exclude_none=True),
        status_code=_status_for(result),
    )


@router.get("/api/images", response_model=ImageListResponse)
async def list_images_endpoint(
    request: Request,
    sub_directory: str = Query("", alias="subDirectory"),
):
    images = await request.app.state.storage.list_images(sub_directory)
    return {"images": images}


@router.delete("/api/images/{filename}", response_model=DeleteResponse)
async def delete_image_endpoint(
    filename: str,
    request: Request,
    sub_directory: str = Query("", alias="subDirectory"),
):
    deleted = await request.app.state.storage.delete(filename, sub_directory)
    return {"deleted": deleted}


@router.get("/api/recent")
async def recent_uploads(request: Request):
    """URLs saved within the last ``TEMP_URL_TTL_SECONDS``."""
    return {"urls": request.app.state.recent_urls.keys()}


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(log_dir=config.LOG_DIR, level=config.LOG_LEVEL)
    ensure_dir(app.state.storage.upload_dir, app.state.storage.dir_mode)
    logger.info("Serving uploads from %s", app.state.storage.upload_dir)
    yield


def create_app(
    storage: Optional[ImageStorage] = None,
    cors_origins: Optional[list] = None,
    max_body_bytes: Optional[int] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    storage = storage or ImageStorage()
    body_limit = max_body_bytes if max_body_bytes is not None else config.MAX_BODY_BYTES
    static_prefix = f"/{storage.url_prefix}/"

    app = FastAPI(title="Image Storage API", lifespan=lifespan)
    app.state.storage = storage
    app.state.recent_urls = TTLCache(
        ttl_seconds=config.TEMP_URL_TTL_SECONDS, max_entries=config.RECENT_URLS_MAX
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins if cors_origins is not None else config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    # --- Middleware ---
    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > body_limit:
            return JSONResponse({"error": "Request body too large."}, status_code=413)
        return await call_next(request)

    @app.middleware("http")
    async def add_cache_control_header(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(static_prefix) and response.status_code == 200:
            response.headers["Cache-Control"] = "public, max-age=604800, immutable"
        return response

    app.include_router(router)

    # Stored files are served from the upload root, e.g. /uploads/WITHDRAW/19-10-2026/<name>.webp.
    # The directory is created on startup or by the first save.
    app.mount(
        f"/{storage.url_prefix}",
        StaticFiles(directory=storage.upload_dir, check_dir=False),
        name="uploads",
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT)
