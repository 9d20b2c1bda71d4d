"""
Character + product image fusion on Gemini generateContent.
"""
from .base import (
    AspectRatio,
    ConfigurationError,
    DownloadError,
    EncodedImage,
    FusedImage,
    GenerationRequest,
    GenerationResult,
    ImageGenerationError,
    ImageReadError,
    InputValidationError,
    NoImageProducedError,
    SafetyBlockedError,
    ServiceRequest,
    SuggestionRequest,
    TransportError,
    build_gemini_error_detail,
    sanitize_gemini_response_for_log,
)
from .download import DownloadArtifact, reencode_image
from .failure_types import ErrorMessage, FailureType, classify_failure, user_message
from .gateway import GeminiGateway
from .service import encode_image, fetch_fused_image, fetch_suggestions

__all__ = [
    "AspectRatio",
    "ConfigurationError",
    "DownloadError",
    "EncodedImage",
    "FusedImage",
    "GenerationRequest",
    "GenerationResult",
    "ImageGenerationError",
    "ImageReadError",
    "InputValidationError",
    "NoImageProducedError",
    "SafetyBlockedError",
    "ServiceRequest",
    "SuggestionRequest",
    "TransportError",
    "build_gemini_error_detail",
    "sanitize_gemini_response_for_log",
    "DownloadArtifact",
    "reencode_image",
    "ErrorMessage",
    "FailureType",
    "classify_failure",
    "user_message",
    "GeminiGateway",
    "encode_image",
    "fetch_fused_image",
    "fetch_suggestions",
]
