import logging
import shutil
from pathlib import Path
from uuid import uuid4

from fastapi import UploadFile

from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads"
ALLOWED_SUFFIXES = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


def ensure_upload_dir(upload_dir: str) -> Path:
    path = Path(upload_dir)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_product_image(upload: UploadFile, upload_dir: str) -> str:
    """Write the upload under ``upload_dir`` and return the path it is served from."""
    suffix = Path(upload.filename or "").suffix.lower()
    if suffix not in ALLOWED_SUFFIXES:
        raise ValidationError(f"Unsupported image type: {suffix or 'unknown'}")
    if upload.content_type and not upload.content_type.startswith("image/"):
        raise ValidationError(f"Unsupported content type: {upload.content_type}")

    filename = f"{uuid4().hex}{suffix}"
    target = ensure_upload_dir(upload_dir) / filename
    with target.open("wb") as handle:
        shutil.copyfileobj(upload.file, handle)
    logger.info("stored product image %s", filename)
    return f"{PUBLIC_PREFIX}/{filename}"
