"""
Consumer-facing operations: encode_image, fetch_suggestions, fetch_fused_image.
Each call builds its own gateway from current settings (credential resolved per call).
"""
import asyncio
import logging
from pathlib import Path
from typing import Any

from fusion.core.config import settings
from fusion.services.image_generation.base import (
    AspectRatio,
    ConfigurationError,
    EncodedImage,
    FusedImage,
    GenerationRequest,
    ImageGenerationError,
    InputValidationError,
    SuggestionRequest,
)
from fusion.services.image_generation.encoder import encode_bytes, encode_data_url, encode_file, encode_upload
from fusion.services.image_generation.gateway import GeminiGateway
from fusion.services.image_generation.interpreter import interpret_fusion, interpret_suggestions
from fusion.services.image_generation.prompts import build_fusion_request, build_suggestion_request
from fusion.utils.metrics import fusion_results_total, suggestion_fetches_total

logger = logging.getLogger(__name__)


def _resolve_gateway(gateway: GeminiGateway | None) -> GeminiGateway:
    gw = gateway or GeminiGateway.from_settings(settings)
    if not gw.is_available():
        raise ConfigurationError("API_KEY environment variable not set")
    return gw


async def encode_image(image: Any, mime_type: str | None = None) -> EncodedImage:
    """
    EncodedImage passes through; bytes need mime_type; a str is a data URL or raw base64;
    a Path is read from disk; anything else is read as an UploadFile.
    """
    if isinstance(image, EncodedImage):
        return image
    if isinstance(image, Path):
        return encode_file(image, mime_type)
    if isinstance(image, str):
        return encode_data_url(image, mime_type)
    if isinstance(image, (bytes, bytearray)):
        return encode_bytes(
            bytes(image),
            mime_type,
            max_bytes=settings.max_file_size_bytes,
            allowed_types=settings.allowed_image_types_set,
        )
    return await encode_upload(image)


async def _encode_pair(character: Any, product: Any) -> tuple[EncodedImage, EncodedImage]:
    if character is None or product is None:
        raise InputValidationError("Both a character and a product image are required")
    # Both reads must finish before any request is built; order between them is free.
    encoded_character, encoded_product = await asyncio.gather(encode_image(character), encode_image(product))
    return encoded_character, encoded_product


async def fetch_suggestions(character: Any, product: Any, *, gateway: GeminiGateway | None = None) -> list[str]:
    """
    Ask the fast text model for short imperative suggestions.

    Returns [] when the response carries no usable suggestions.

    Raises:
        ConfigurationError: API key missing (checked before encoding or network)
        TransportError: the call itself failed
        ImageReadError: an image could not be read
    """
    gw = _resolve_gateway(gateway)
    encoded_character, encoded_product = await _encode_pair(character, product)
    request = build_suggestion_request(SuggestionRequest(character=encoded_character, product=encoded_product))
    result = await gw.call(request.payload, request.model, call="suggestions")
    suggestions = interpret_suggestions(result)
    suggestion_fetches_total.labels(outcome="ok" if suggestions else "empty").inc()
    logger.info("suggestions_fetched", extra={"model": request.model, "suggestion_count": len(suggestions)})
    return suggestions


async def fetch_fused_image(
    character: Any,
    product: Any,
    instruction: str | None = "",
    aspect_ratio: AspectRatio | str | None = AspectRatio.ORIGINAL,
    *,
    gateway: GeminiGateway | None = None,
) -> FusedImage:
    """
    Ask the image model to merge the product into the character image.

    Raises:
        ConfigurationError, TransportError, SafetyBlockedError, NoImageProducedError, InputValidationError
    """
    ratio = AspectRatio.ORIGINAL
    try:
        gw = _resolve_gateway(gateway)
        ratio = AspectRatio.parse(aspect_ratio)
        encoded_character, encoded_product = await _encode_pair(character, product)
        request = build_fusion_request(
            GenerationRequest(
                character=encoded_character,
                product=encoded_product,
                instruction=instruction or "",
                aspect_ratio=ratio,
            )
        )
        result = await gw.call(request.payload, request.model, call="fusion")
        image = interpret_fusion(result)
    except ImageGenerationError as e:
        fusion_results_total.labels(outcome=e.failure_type.value).inc()
        logger.info(
            "fusion_result",
            extra={"failure_type": e.failure_type.value, "aspect_ratio": ratio.value, "error": str(e)},
        )
        raise
    fusion_results_total.labels(outcome="success").inc()
    logger.info(
        "fusion_result",
        extra={"model": request.model, "media_type": image.media_type, "aspect_ratio": ratio.value},
    )
    return image
