"""
Base types for the fusion flow: encoded images, built requests, results and errors.
Used by encoder, prompts, gateway, interpreter and service.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import base64

from fusion.services.image_generation.failure_types import FailureType


class AspectRatio(str, Enum):
    """Output-shape constraint; ORIGINAL keeps the character image's dimensions."""

    ORIGINAL = "original"
    SQUARE = "1:1"
    LANDSCAPE_16_9 = "16:9"
    PORTRAIT_9_16 = "9:16"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT_3_4 = "3:4"

    @classmethod
    def parse(cls, value: "str | AspectRatio | None") -> "AspectRatio":
        """Parse user input; empty means ORIGINAL. Raises InputValidationError on unknown values."""
        if isinstance(value, AspectRatio):
            return value
        raw = (value or "").strip().lower()
        if not raw:
            return cls.ORIGINAL
        try:
            return cls(raw)
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise InputValidationError(
                f"Unsupported aspect ratio: {value}. Allowed: {allowed}",
                detail={"aspect_ratio": value},
            ) from None


@dataclass(frozen=True)
class EncodedImage:
    """Base64 image payload (no data: prefix) plus declared media type."""
    data: str
    mime_type: str

    def as_inline_part(self) -> dict[str, Any]:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}


@dataclass(frozen=True)
class SuggestionRequest:
    character: EncodedImage
    product: EncodedImage


@dataclass(frozen=True)
class GenerationRequest:
    character: EncodedImage
    product: EncodedImage
    instruction: str = ""
    aspect_ratio: AspectRatio = AspectRatio.ORIGINAL


@dataclass(frozen=True)
class ServiceRequest:
    """Payload ready for the gateway, with the model it must go to."""
    model: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class FusedImage:
    """Successful fusion output."""
    media_type: str
    data: str

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"

    @property
    def content(self) -> bytes:
        return base64.standard_b64decode(self.data)


@dataclass(frozen=True)
class GenerationResult:
    """Exactly one of image / failure_type is set."""
    image: FusedImage | None = None
    failure_type: FailureType | None = None
    detail: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if (self.image is None) == (self.failure_type is None):
            raise ValueError("GenerationResult needs exactly one of image or failure_type")

    @property
    def ok(self) -> bool:
        return self.image is not None


class ImageGenerationError(Exception):
    """Raised when a fusion-flow step fails; detail holds normalized fields for logging."""

    failure_type: FailureType = FailureType.TRANSPORT

    def __init__(self, message: str, detail: dict[str, Any] | None = None):
        super().__init__(message)
        self.detail = detail or {}


class ConfigurationError(ImageGenerationError):
    failure_type = FailureType.CONFIGURATION


class TransportError(ImageGenerationError):
    failure_type = FailureType.TRANSPORT


class SafetyBlockedError(ImageGenerationError):
    failure_type = FailureType.SAFETY_BLOCKED


class NoImageProducedError(ImageGenerationError):
    failure_type = FailureType.NO_IMAGE_PRODUCED


class InputValidationError(ImageGenerationError):
    failure_type = FailureType.VALIDATION


class ImageReadError(InputValidationError):
    """Uploaded image could not be read (empty, unreadable, wrong type, too large)."""


class DownloadError(ImageGenerationError):
    failure_type = FailureType.DOWNLOAD


def build_gemini_error_detail(result: dict[str, Any]) -> dict[str, Any]:
    """
    Extract error-related fields from a raw Gemini response for logging.
    Normalized keys: prompt_feedback, block_reason, finish_reason, finish_message, safety_ratings.
    """
    detail: dict[str, Any] = {}
    if not isinstance(result, dict):
        return detail
    prompt_feedback = result.get("promptFeedback") or {}
    if isinstance(prompt_feedback, dict) and prompt_feedback:
        detail["prompt_feedback"] = prompt_feedback
        if prompt_feedback.get("blockReason"):
            detail["block_reason"] = prompt_feedback.get("blockReason")
    candidates = result.get("candidates") or []
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        c0 = candidates[0]
        if "finishReason" in c0:
            detail["finish_reason"] = c0["finishReason"]
        if "finishMessage" in c0:
            detail["finish_message"] = c0["finishMessage"]
        if "safetyRatings" in c0:
            detail["safety_ratings"] = c0["safetyRatings"]
    return detail


def _sanitize_value(value: Any) -> Any:
    """Recursively replace base64 data with placeholder."""
    if value is None:
        return None
    if isinstance(value, dict):
        if "data" in value and "mimeType" in value:
            return {"mimeType": value.get("mimeType"), "data": "[REDACTED]"}
        return {k: _sanitize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_value(v) for v in value]
    return value


def sanitize_gemini_response_for_log(result: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of a Gemini request/response safe for logging (no base64 image data)."""
    if not result:
        return {}
    out = _sanitize_value(result)
    return out if isinstance(out, dict) else {}
