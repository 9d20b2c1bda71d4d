"""
Request builder: Gemini generateContent payloads for suggestions and fusion.
Instruction text is passed through verbatim; nothing here validates it.
"""
from typing import Any

from fusion.core.config import settings
from fusion.services.image_generation.base import (
    AspectRatio,
    EncodedImage,
    GenerationRequest,
    ServiceRequest,
    SuggestionRequest,
)

SUGGESTIONS_FIELD = "suggestions"

SUGGESTION_PROMPT = (
    "Analyze the following two images. Image 1 contains a character, and Image 2 contains a product. "
    "Based on your analysis, generate exactly {count} short, creative, and actionable prompt suggestions "
    "for how to combine them. The suggestions should be phrased as commands "
    '(e.g., "Make the character wear the [product]"). '
    'Return the suggestions as a JSON object with a single key "suggestions" containing an array of strings.'
)

DEFAULT_INSTRUCTION = (
    "Make the character from the first image interact with or use the product from the second image."
)

FUSION_PROMPT_HEADER = """You are an expert image editor. Your task is to realistically merge a product into a character's image.

**Goal:** {instruction}

**Image 1 (Character Image):** This is the main subject and the base for the final image.
**Image 2 (Product Image):** This contains the product to be integrated with the character."""

FUSION_RULES = (
    "**Combine:** Generate a new image where the character from Image 1 is interacting with or wearing "
    "the product from Image 2, as described in the goal.",
    "**Full Product Integration:** The *entire* product from Image 2 must be realistically integrated. "
    "**Do not just copy a logo, graphic, or texture from the product.** For example, if the goal is for the "
    "character to wear a t-shirt from Image 2, the final image must show the character wearing the "
    "*complete t-shirt* (including its color, shape, and fabric), not just the graphic from the t-shirt "
    "pasted onto their original clothing.",
    "**High-Fidelity Detail Transfer:** All visual details from the product in Image 2 must be transferred. "
    "This includes all graphics, logos, text, patterns, and textures. Ensure the final representation is a "
    "faithful and complete reproduction of the product's design.",
    "**Preserve Style:** The final image's artistic style, lighting, and overall aesthetic MUST exactly "
    "match the Character Image (Image 1).",
    "**Preserve Dimensions:** The final image MUST have the same dimensions and aspect ratio as the "
    "Character Image (Image 1), unless an aspect ratio override is given below.",
    "**No Additions:** Do not add any new elements, characters, or complex backgrounds. Only modify what "
    "is necessary to combine the character and product naturally.",
)

ASPECT_RATIO_OVERRIDE = (
    "**Aspect Ratio Override:** Ignore the dimension rule above. The final image MUST have a {ratio} "
    "aspect ratio. Recompose or extend the scene naturally to fit this ratio without distorting "
    "the character or the product."
)


def effective_instruction(user_instruction: str | None) -> str:
    """User text if non-blank after trimming (kept verbatim), else the default instruction."""
    if user_instruction and user_instruction.strip():
        return user_instruction
    return DEFAULT_INSTRUCTION


def aspect_ratio_clause(aspect_ratio: AspectRatio | str | None) -> str | None:
    ratio = AspectRatio.parse(aspect_ratio)
    if ratio is AspectRatio.ORIGINAL:
        return None
    return ASPECT_RATIO_OVERRIDE.format(ratio=ratio.value)


def compose_fusion_prompt(user_instruction: str | None, aspect_ratio: AspectRatio | str | None = None) -> str:
    """Full instruction block: goal, image roles, numbered rules, optional ratio override."""
    lines = [FUSION_PROMPT_HEADER.format(instruction=effective_instruction(user_instruction)), "", "**Strict Rules:**"]
    lines.extend(f"{i}.  {rule}" for i, rule in enumerate(FUSION_RULES, start=1))
    override = aspect_ratio_clause(aspect_ratio)
    if override:
        lines.append(f"{len(FUSION_RULES) + 1}.  {override}")
    return "\n".join(lines) + "\n"


def _user_contents(character: EncodedImage, product: EncodedImage, text: str) -> list[dict[str, Any]]:
    return [{
        "role": "user",
        "parts": [
            character.as_inline_part(),
            product.as_inline_part(),
            {"text": text},
        ],
    }]


def build_suggestion_request(request: SuggestionRequest, *, model: str | None = None) -> ServiceRequest:
    """JSON-mode request asking for short imperative suggestions; shape enforced via responseSchema."""
    payload = {
        "contents": _user_contents(
            request.character,
            request.product,
            SUGGESTION_PROMPT.format(count=settings.suggestion_count),
        ),
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": {
                "type": "OBJECT",
                "properties": {
                    SUGGESTIONS_FIELD: {
                        "type": "ARRAY",
                        "items": {"type": "STRING"},
                    },
                },
                "required": [SUGGESTIONS_FIELD],
            },
        },
    }
    return ServiceRequest(model=model or settings.gemini_suggestion_model, payload=payload)


def build_fusion_request(request: GenerationRequest, *, model: str | None = None) -> ServiceRequest:
    """Image+text modality request carrying both images and the composed instruction block."""
    ratio = AspectRatio.parse(request.aspect_ratio)
    generation_config: dict[str, Any] = {"responseModalities": ["IMAGE", "TEXT"]}
    if ratio is not AspectRatio.ORIGINAL:
        generation_config["imageConfig"] = {"aspectRatio": ratio.value}
    payload = {
        "contents": _user_contents(
            request.character,
            request.product,
            compose_fusion_prompt(request.instruction, ratio),
        ),
        "generationConfig": generation_config,
    }
    return ServiceRequest(model=model or settings.gemini_fusion_model, payload=payload)
