"""Validation helpers for uploaded images."""

import base64
import io
from typing import Tuple

from fastapi import HTTPException, UploadFile
from PIL import Image, UnidentifiedImageError

MAX_IMAGE_BYTES = 5 * 1024 * 1024

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
}

# Pillow cannot decode HEIC/HEIF without a plugin, so those are accepted on content type alone.
DECODABLE_FORMATS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}


def strip_data_url(data: str) -> str:
    """Return the base64 payload of a `data:` URL, or `data` unchanged."""
    if data.startswith("data:") and "," in data:
        return data.split(",", 1)[1]
    return data


def resolve_image_type(image_file: UploadFile) -> str:
    """Return the normalized MIME type of the upload, or raise HTTP 415."""
    if image_file.content_type:
        content_type = image_file.content_type.lower().split(";", 1)[0].strip()
        if content_type in ALLOWED_IMAGE_TYPES:
            return "image/jpeg" if content_type == "image/jpg" else content_type
        if content_type != "application/octet-stream":
            raise HTTPException(
                status_code=415,
                detail="Please upload a clear image of your skin concern (JPG, PNG, heic, heif or WebP)",
            )
    filename = (image_file.filename or "").lower()
    for extension, content_type in _EXTENSION_TYPES.items():
        if filename.endswith(extension):
            return content_type
    raise HTTPException(status_code=415, detail="Unsupported or missing image content type.")


def validate_image_bytes(image_bytes: bytes, content_type: str, max_bytes: int = MAX_IMAGE_BYTES) -> None:
    """Check size and, where Pillow can, that the bytes decode as the declared format."""
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Uploaded image file is empty.")
    if len(image_bytes) > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise HTTPException(status_code=413, detail=f"Please upload an image smaller than {limit_mb:g}MB")

    expected = DECODABLE_FORMATS.get(content_type)
    if expected is None:
        return
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            actual = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise HTTPException(status_code=400, detail="Uploaded file is not a readable image.") from exc
    if actual != expected:
        raise HTTPException(
            status_code=400,
            detail=f"Uploaded file is {actual}, which does not match its declared type {content_type}.",
        )


async def read_image_upload(image_file: UploadFile, max_bytes: int = MAX_IMAGE_BYTES) -> Tuple[str, str]:
    """Validate an uploaded image and return `(base64_data, media_type)`.

    Size is checked against the original file bytes, before encoding.
    """
    content_type = resolve_image_type(image_file)
    image_bytes = await image_file.read()
    validate_image_bytes(image_bytes, content_type, max_bytes)
    return base64.b64encode(image_bytes).decode("ascii"), content_type
