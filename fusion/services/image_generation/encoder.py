"""
Media Encoder: turn an uploaded image into base64 text plus its media type.
Accepts raw bytes, a local path, a data: URL, or a FastAPI/Starlette UploadFile.
"""
import base64
import binascii
import logging
from pathlib import Path
from typing import Any

from fusion.core.config import settings
from fusion.services.image_generation.base import EncodedImage, ImageReadError

logger = logging.getLogger(__name__)

_EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "gif": "image/gif",
    "heic": "image/heic",
    "heif": "image/heif",
}


def _get_mime_type(path: str) -> str | None:
    """Guess the media type from the file extension."""
    ext = Path(path).suffix.lower().lstrip(".")
    return _EXTENSION_MIME_TYPES.get(ext)


def _normalize_mime_type(mime_type: str | None) -> str:
    # "image/png; charset=binary" -> "image/png"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def _check_image(size: int, mime_type: str, *, max_bytes: int | None, allowed_types: set[str] | None) -> None:
    if size == 0:
        raise ImageReadError("Image file is empty")
    if not mime_type.startswith("image/"):
        raise ImageReadError(f"Not an image: {mime_type or 'unknown type'}", detail={"media_type": mime_type})
    if allowed_types and mime_type not in allowed_types:
        raise ImageReadError(f"Unsupported image type: {mime_type}", detail={"media_type": mime_type})
    if max_bytes is not None and size > max_bytes:
        raise ImageReadError(
            f"Image is too large ({size} bytes, max {max_bytes})",
            detail={"size_bytes": size, "max_bytes": max_bytes},
        )


def encode_bytes(
    raw: bytes,
    mime_type: str | None,
    *,
    max_bytes: int | None = None,
    allowed_types: set[str] | None = None,
) -> EncodedImage:
    """
    Encode raw image bytes.

    Output is deterministic: the same bytes and media type always give the same EncodedImage.

    Raises:
        ImageReadError: empty content, non-image media type, unsupported type or too large
    """
    normalized = _normalize_mime_type(mime_type)
    _check_image(len(raw), normalized, max_bytes=max_bytes, allowed_types=allowed_types)
    data = base64.standard_b64encode(raw).decode("ascii")
    return EncodedImage(data=data, mime_type=normalized)


def strip_data_url_prefix(value: str) -> tuple[str, str | None]:
    """
    Split 'data:image/png;base64,AAAA' into ('AAAA', 'image/png').
    Plain base64 is returned unchanged with mime None.
    """
    value = value.strip()
    if not value.startswith("data:") or "," not in value:
        return value, None
    header, data = value.split(",", 1)
    mime = header[len("data:"):].split(";", 1)[0] or None
    return data, mime


def encode_data_url(value: str, mime_type: str | None = None) -> EncodedImage:
    """Re-validate an already base64-encoded image (data: URL or bare base64)."""
    data, declared = strip_data_url_prefix(value)
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageReadError(f"Invalid base64 image data: {e}") from e
    return encode_bytes(
        raw,
        mime_type or declared,
        max_bytes=settings.max_file_size_bytes,
        allowed_types=settings.allowed_image_types_set,
    )


def encode_file(path: str | Path, mime_type: str | None = None) -> EncodedImage:
    """Read and encode a local image file. Read failures raise ImageReadError."""
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        logger.warning("image_read_failed", extra={"error": str(e)})
        raise ImageReadError(f"Could not read image: {path.name}") from e
    return encode_bytes(
        raw,
        mime_type or _get_mime_type(str(path)),
        max_bytes=settings.max_file_size_bytes,
        allowed_types=settings.allowed_image_types_set,
    )


async def encode_upload(upload: Any) -> EncodedImage:
    """
    Read and encode an UploadFile-like object (async read(), content_type, filename).
    Media type comes from the declared content type, falling back to the file extension.
    """
    try:
        raw = await upload.read()
    except OSError as e:
        logger.warning("image_read_failed", extra={"error": str(e)})
        raise ImageReadError(f"Could not read image: {getattr(upload, 'filename', '')}") from e
    mime_type = _normalize_mime_type(getattr(upload, "content_type", None))
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = _get_mime_type(getattr(upload, "filename", "") or "") or mime_type
    return encode_bytes(
        raw,
        mime_type,
        max_bytes=settings.max_file_size_bytes,
        allowed_types=settings.allowed_image_types_set,
    )
