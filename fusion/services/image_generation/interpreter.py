"""
Response interpreter for Gemini generateContent bodies.
Suggestions fail closed to an empty list; fusion fails closed to NoImageProducedError.
A 200 OK without an image part is never a silent success.
"""
import json
import logging
from typing import Any

from fusion.core.config import settings
from fusion.services.image_generation.base import (
    FusedImage,
    NoImageProducedError,
    SafetyBlockedError,
    build_gemini_error_detail,
    sanitize_gemini_response_for_log,
)
from fusion.services.image_generation.prompts import SUGGESTIONS_FIELD

logger = logging.getLogger(__name__)

# finishReason values that mean the service refused on policy grounds
SAFETY_FINISH_REASONS = frozenset({
    "SAFETY",
    "IMAGE_SAFETY",
})

DEFAULT_IMAGE_MIME_TYPE = "image/png"


def _first_candidate(result: Any) -> dict[str, Any]:
    if not isinstance(result, dict):
        return {}
    candidates = result.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return {}
    c0 = candidates[0]
    return c0 if isinstance(c0, dict) else {}


def _candidate_parts(candidate: dict[str, Any]) -> list[Any]:
    content = candidate.get("content")
    if not isinstance(content, dict):
        return []
    parts = content.get("parts")
    return parts if isinstance(parts, list) else []


def response_text(result: Any) -> str:
    """Concatenate the text parts of the first candidate (SDK's response.text)."""
    texts = []
    for part in _candidate_parts(_first_candidate(result)):
        if isinstance(part, dict) and isinstance(part.get("text"), str):
            texts.append(part["text"])
    return "".join(texts)


def interpret_suggestions(result: Any, max_items: int | None = None) -> list[str]:
    """
    Extract the suggestions array from a JSON-mode response.
    Any shape problem (no text, invalid JSON, missing field, wrong types) yields [].
    """
    limit = max_items if max_items is not None else settings.suggestion_max_items
    text = response_text(result).strip()
    if not text:
        logger.info("suggestions_empty_response")
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("suggestions_invalid_json", extra={"error": text[:200]})
        return []
    if not isinstance(parsed, dict):
        return []
    items = parsed.get(SUGGESTIONS_FIELD)
    if not isinstance(items, list):
        return []
    suggestions = [item.strip() for item in items if isinstance(item, str) and item.strip()]
    return suggestions[:limit]


def is_safety_blocked(result: Any) -> bool:
    """Prompt-level blockReason, or first candidate stopped for safety."""
    if not isinstance(result, dict):
        return False
    prompt_feedback = result.get("promptFeedback")
    if isinstance(prompt_feedback, dict) and prompt_feedback.get("blockReason"):
        return True
    finish_reason = _first_candidate(result).get("finishReason")
    return isinstance(finish_reason, str) and finish_reason.strip().upper() in SAFETY_FINISH_REASONS


def interpret_fusion(result: Any) -> FusedImage:
    """
    Return the first inline image part of the first candidate.

    Raises:
        SafetyBlockedError: block reason or safety finish reason (even if image data is present)
        NoImageProducedError: no part carries inline image data
    """
    if is_safety_blocked(result):
        detail = build_gemini_error_detail(result)
        logger.warning(
            "fusion_safety_blocked",
            extra={"block_reason": detail.get("block_reason"), "finish_reason": detail.get("finish_reason")},
        )
        raise SafetyBlockedError("SAFETY_POLICY_VIOLATION", detail=detail)

    for part in _candidate_parts(_first_candidate(result)):
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
            mime_type = inline.get("mimeType") or inline.get("mime_type") or DEFAULT_IMAGE_MIME_TYPE
            return FusedImage(media_type=mime_type, data=inline["data"])

    detail = build_gemini_error_detail(result)
    detail["text"] = response_text(result)[:500]
    logger.warning("fusion_no_image", extra={"finish_reason": detail.get("finish_reason")})
    if isinstance(result, dict):
        logger.debug("fusion_no_image_response", extra={"error": json.dumps(sanitize_gemini_response_for_log(result))[:2000]})
    raise NoImageProducedError("No image was generated. The model may have refused the prompt.", detail=detail)
