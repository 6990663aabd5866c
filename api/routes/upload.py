"""
api/routes/upload.py -- Image upload.

  POST /upload  (multipart, field "image") -> {"url": "<public base>/image/<name>"}

Files are written to Settings.upload_dir as <field>-<millis>-<random><ext>
and served back by the /image static mount in asgi.py. The client filename
only contributes its extension, so path components in it are never used.
"""

import logging
import secrets
import time
from pathlib import Path

from fastapi import APIRouter, HTTPException, Request, UploadFile

from api.models import ErrorDetail, UploadResponse
from core.config import Settings
from core.errors import ValidationError

logger = logging.getLogger("storekeep.api.upload")

router = APIRouter()

_FIELD = "image"
_ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp"})
_MAX_UPLOAD_BYTES = 5 * 1024 * 1024  # 5 MB


def _stored_name(filename: str) -> str:
    ext = Path(filename).suffix.lower()
    if ext not in _ALLOWED_EXTENSIONS:
        raise ValidationError(
            "Only image files are allowed.",
            detail=f"Accepted extensions: {', '.join(sorted(_ALLOWED_EXTENSIONS))}",
        )
    return f"{_FIELD}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{ext}"


@router.post("/upload", response_model=UploadResponse)
async def upload_image(request: Request, image: UploadFile) -> UploadResponse:
    settings: Settings = request.app.state.settings
    name = _stored_name(image.filename or "")

    # Size guard -- read up to the limit + 1 byte; reject if over
    raw = await image.read(_MAX_UPLOAD_BYTES + 1)
    if len(raw) > _MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(code="file_too_large", message="Upload must be 5 MB or smaller.").model_dump(),
        )

    target_dir = Path(settings.upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / name).write_bytes(raw)
    logger.info("Stored upload %s (%d bytes)", name, len(raw))
    return UploadResponse(url=f"{settings.public_base_url.rstrip('/')}/image/{name}")
