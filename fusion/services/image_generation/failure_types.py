"""
Failure taxonomy for the fusion flow.
Every error that reaches presentation is mapped to exactly one FailureType
and a fixed user-facing title/message pair.
"""
from dataclasses import dataclass
from enum import Enum


class FailureType(str, Enum):
    """Kinds of failure the UI can show."""

    CONFIGURATION = "configuration"  # API key missing
    TRANSPORT = "transport"  # non-2xx, timeout, connectivity, unreadable body
    SAFETY_BLOCKED = "safety_blocked"  # promptFeedback.blockReason / finishReason SAFETY
    NO_IMAGE_PRODUCED = "no_image_produced"  # 200 OK but no inline image part
    VALIDATION = "validation"  # local precondition (missing/unreadable image)
    DOWNLOAD = "download"  # re-encoding for download failed


@dataclass(frozen=True)
class ErrorMessage:
    title: str
    message: str


ERROR_MESSAGES: dict[FailureType, ErrorMessage] = {
    FailureType.CONFIGURATION: ErrorMessage(
        title="Configuration Error",
        message="The image service is not configured. Set the API key and try again.",
    ),
    FailureType.TRANSPORT: ErrorMessage(
        title="Oops! Something Went Wrong",
        message=(
            "An unexpected error occurred. Please check your internet connection and try again. "
            "If the problem continues, the service might be temporarily unavailable."
        ),
    ),
    FailureType.SAFETY_BLOCKED: ErrorMessage(
        title="Content Policy Violation",
        message=(
            "The request was blocked because the prompt or images may have violated safety policies. "
            "Please adjust your inputs and try again."
        ),
    ),
    FailureType.NO_IMAGE_PRODUCED: ErrorMessage(
        title="Image Generation Unsuccessful",
        message=(
            "The model was unable to generate an image. This can happen if the request is unclear. "
            "Please try modifying your instructions or using different images."
        ),
    ),
    FailureType.VALIDATION: ErrorMessage(
        title="Missing Images",
        message="Please upload both a character and a product image before generating.",
    ),
    FailureType.DOWNLOAD: ErrorMessage(
        title="Download Failed",
        message="Could not convert the image for download. Please try right-clicking to save.",
    ),
}

# HTTP status used by the API layer for each kind
HTTP_STATUS: dict[FailureType, int] = {
    FailureType.CONFIGURATION: 503,
    FailureType.TRANSPORT: 502,
    FailureType.SAFETY_BLOCKED: 422,
    FailureType.NO_IMAGE_PRODUCED: 422,
    FailureType.VALIDATION: 400,
    FailureType.DOWNLOAD: 422,
}


def classify_failure(exc: BaseException) -> FailureType:
    """
    Map any exception to a FailureType.
    Typed errors carry their own kind; anything else is treated as transport.
    """
    failure_type = getattr(exc, "failure_type", None)
    if isinstance(failure_type, FailureType):
        return failure_type
    return FailureType.TRANSPORT


def user_message(failure_type: FailureType) -> ErrorMessage:
    return ERROR_MESSAGES[failure_type]
