"""
Download path: re-encode a generated image to PNG or JPEG in memory.
Buffers and images are context-managed so they are released on every exit path.
"""
import base64
import binascii
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from fusion.core.config import settings
from fusion.services.image_generation.base import DownloadError
from fusion.services.image_generation.encoder import strip_data_url_prefix

logger = logging.getLogger(__name__)

DOWNLOAD_FORMATS = {
    "png": ("PNG", "image/png"),
    "jpeg": ("JPEG", "image/jpeg"),
}
DOWNLOAD_BASENAME = "fused-image"


@dataclass(frozen=True)
class DownloadArtifact:
    content: bytes
    media_type: str
    filename: str


def _jpeg_quality(quality: float | None) -> int:
    """Map browser-style 0..1 quality to Pillow's 1..95 scale."""
    q = settings.default_jpeg_quality if quality is None else float(quality)
    q = max(0.0, min(1.0, q))
    return max(1, min(95, round(q * 100)))


def _decode_source(image: str | bytes) -> bytes:
    if isinstance(image, (bytes, bytearray)):
        return bytes(image)
    data, _ = strip_data_url_prefix(image)
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DownloadError("Could not decode the image for download", detail={"error": str(e)}) from e


def reencode_image(image: str | bytes, fmt: str = "png", quality: float | None = None) -> DownloadArtifact:
    """
    Re-encode an image (data: URL, bare base64 or raw bytes) at its natural size.

    Raises:
        DownloadError: unknown format, undecodable source, or encoder failure
    """
    fmt = (fmt or "png").strip().lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in DOWNLOAD_FORMATS:
        raise DownloadError(f"Unsupported download format: {fmt}", detail={"format": fmt})
    pil_format, media_type = DOWNLOAD_FORMATS[fmt]

    raw = _decode_source(image)
    try:
        with io.BytesIO(raw) as src, Image.open(src) as img:
            img.load()
            # JPEG has no alpha channel; PNG keeps it, including palette transparency
            has_alpha = "A" in img.getbands() or img.info.get("transparency") is not None
            mode = "RGBA" if fmt == "png" and has_alpha else "RGB"
            with img.convert(mode) as canvas, io.BytesIO() as out:
                save_kwargs = {"quality": _jpeg_quality(quality)} if fmt == "jpeg" else {}
                canvas.save(out, format=pil_format, **save_kwargs)
                content = out.getvalue()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.warning("download_reencode_failed", extra={"error": str(e)})
        raise DownloadError("Could not convert the image for download", detail={"error": str(e)}) from e

    if not content:
        raise DownloadError("Could not convert the image for download")
    return DownloadArtifact(content=content, media_type=media_type, filename=f"{DOWNLOAD_BASENAME}.{fmt}")
