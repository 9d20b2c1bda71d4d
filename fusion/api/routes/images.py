"""
Stateless fusion API: encode, suggestions, fuse, download.
The browser keeps its own state and calls these directly.
"""
import logging

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import Response

from fusion.api.routes.errors import http_error
from fusion.schemas.fusion import (
    DownloadIn,
    EncodedImageOut,
    FusedImageOut,
    SuggestionsOut,
)
from fusion.services.image_generation import (
    ImageGenerationError,
    encode_image,
    fetch_fused_image,
    fetch_suggestions,
    reencode_image,
)
from fusion.services.state import STATIC_SUGGESTIONS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["images"])


@router.post("/encode", response_model=EncodedImageOut)
async def encode(file: UploadFile = File(...)) -> EncodedImageOut:
    try:
        encoded = await encode_image(file)
    except ImageGenerationError as e:
        raise http_error(e) from e
    return EncodedImageOut(data=encoded.data, mime_type=encoded.mime_type)


@router.post("/suggestions", response_model=SuggestionsOut)
async def suggestions(
    character: UploadFile = File(...),
    product: UploadFile = File(...),
) -> SuggestionsOut:
    """Dynamic suggestions; any failure falls back to the static list."""
    try:
        items = await fetch_suggestions(character, product)
    except Exception as e:
        logger.warning("suggestions_fetch_failed", extra={"error": str(e)})
        return SuggestionsOut(suggestions=list(STATIC_SUGGESTIONS), degraded=True)
    if not items:
        return SuggestionsOut(suggestions=list(STATIC_SUGGESTIONS), degraded=False)
    return SuggestionsOut(suggestions=items)


@router.post("/fuse", response_model=FusedImageOut)
async def fuse(
    character: UploadFile = File(...),
    product: UploadFile = File(...),
    instruction: str = Form(""),
    aspect_ratio: str = Form("original"),
) -> FusedImageOut:
    try:
        image = await fetch_fused_image(character, product, instruction, aspect_ratio)
    except Exception as e:
        if not isinstance(e, ImageGenerationError):
            logger.exception("fuse_unexpected_error")
        raise http_error(e) from e
    return FusedImageOut(image=image.data_url, media_type=image.media_type)


@router.post("/download")
def download(body: DownloadIn) -> Response:
    try:
        artifact = reencode_image(body.image, body.format, body.quality)
    except ImageGenerationError as e:
        raise http_error(e) from e
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )
