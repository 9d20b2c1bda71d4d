"""
Orchestration state machine for one browser session, plus an in-memory session store.

Suggestions and fusion are independent asyncio flows. In-flight calls are never
cancelled: a call whose sequence number is no longer current is abandoned and
its result ignored (last write wins).
"""
import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from fusion.core.config import settings
from fusion.schemas.fusion import ErrorOut, ImageInfo, SessionState
from fusion.services.image_generation import (
    AspectRatio,
    EncodedImage,
    FailureType,
    FusedImage,
    GenerationResult,
    InputValidationError,
    classify_failure,
    fetch_fused_image,
    fetch_suggestions,
    user_message,
)
from fusion.services.image_generation.encoder import encode_bytes
from fusion.utils.metrics import suggestion_fetches_total

logger = logging.getLogger(__name__)

STATIC_SUGGESTIONS = (
    "Make the character wear the item",
    "Have the character hold the object",
    "Place the item on the character's head",
    "Integrate the product into the scene",
)

SuggestionFetcher = Callable[[EncodedImage, EncodedImage], Awaitable[list[str]]]
FusionFetcher = Callable[[EncodedImage, EncodedImage, str, AspectRatio], Awaitable[FusedImage]]


class ImageSlot(str, Enum):
    CHARACTER = "character"
    PRODUCT = "product"


class SuggestionsStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class GenerationStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class UploadedImage:
    """User-selected image; content is immutable once created."""
    content: bytes
    media_type: str
    preview_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    released: bool = False

    @classmethod
    def create(cls, content: bytes, media_type: str | None) -> "UploadedImage":
        """Validate via the media encoder up front so bad files fail at selection time."""
        encoded = encode_bytes(
            content,
            media_type,
            max_bytes=settings.max_file_size_bytes,
            allowed_types=settings.allowed_image_types_set,
        )
        return cls(content=content, media_type=encoded.mime_type)

    def to_encoded(self) -> EncodedImage:
        return encode_bytes(self.content, self.media_type)

    def release(self) -> None:
        self.released = True


class FusionSession:
    """
    Per-session flow: uploads -> suggestions -> fusion -> result/error -> reset.

    Only this object mutates its result/error; at most one fusion attempt is pending.
    """

    def __init__(
        self,
        session_id: str | None = None,
        *,
        suggestion_fetcher: SuggestionFetcher | None = None,
        fusion_fetcher: FusionFetcher | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._fetch_suggestions = suggestion_fetcher or fetch_suggestions
        self._fetch_fused_image = fusion_fetcher or fetch_fused_image
        self.character: UploadedImage | None = None
        self.product: UploadedImage | None = None
        self.instruction = ""
        self.aspect_ratio = AspectRatio.ORIGINAL
        self.suggestions_status = SuggestionsStatus.IDLE
        self.dynamic_suggestions: list[str] = []
        self.generation_status = GenerationStatus.IDLE
        self.outcome: GenerationResult | None = None
        self._suggestion_seq = 0
        self._generation_seq = 0
        self._suggestion_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()

    # ----- inputs -----

    @property
    def has_both_images(self) -> bool:
        return self.character is not None and self.product is not None

    @property
    def can_generate(self) -> bool:
        return self.has_both_images and self.generation_status is not GenerationStatus.PENDING

    def set_image(self, slot: ImageSlot | str, image: UploadedImage) -> None:
        """
        Replace the image in a slot and restart suggestions.
        Must be called from a running event loop when both images end up present.
        """
        slot = ImageSlot(slot)
        previous = self.character if slot is ImageSlot.CHARACTER else self.product
        if previous is not None:
            previous.release()
        if slot is ImageSlot.CHARACTER:
            self.character = image
        else:
            self.product = image
        self._restart_suggestions()

    def get_image(self, slot: ImageSlot | str) -> UploadedImage | None:
        return self.character if ImageSlot(slot) is ImageSlot.CHARACTER else self.product

    def set_instruction(self, text: str | None) -> None:
        self.instruction = text or ""

    def set_aspect_ratio(self, value: AspectRatio | str | None) -> None:
        self.aspect_ratio = AspectRatio.parse(value)

    # ----- suggestions -----

    @property
    def suggestions(self) -> list[str]:
        """Dynamic suggestions when available, otherwise the static list."""
        if self.suggestions_status is SuggestionsStatus.READY and self.dynamic_suggestions:
            return list(self.dynamic_suggestions)
        return list(STATIC_SUGGESTIONS)

    def _restart_suggestions(self) -> None:
        self._suggestion_seq += 1
        self.dynamic_suggestions = []
        if not self.has_both_images:
            self.suggestions_status = SuggestionsStatus.IDLE
            self._suggestion_task = None
            return
        self.suggestions_status = SuggestionsStatus.PENDING
        task = asyncio.get_running_loop().create_task(
            self._run_suggestions(self._suggestion_seq, self.character, self.product)
        )
        self._suggestion_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_suggestions(self, seq: int, character: UploadedImage, product: UploadedImage) -> None:
        try:
            suggestions = await self._fetch_suggestions(character.to_encoded(), product.to_encoded())
        except Exception as e:
            # Suggestion failures only degrade to the static list
            suggestion_fetches_total.labels(outcome="failed").inc()
            logger.warning(
                "suggestions_fetch_failed",
                extra={"session_id": self.session_id, "failure_type": classify_failure(e).value, "error": str(e)},
            )
            if seq == self._suggestion_seq:
                self.dynamic_suggestions = []
                self.suggestions_status = SuggestionsStatus.FAILED
            return
        if seq != self._suggestion_seq:
            logger.info("suggestions_discarded_stale", extra={"session_id": self.session_id})
            return
        self.dynamic_suggestions = list(suggestions)
        self.suggestions_status = SuggestionsStatus.READY

    async def wait_for_suggestions(self) -> None:
        """Wait for the current suggestion fetch, if any."""
        task = self._suggestion_task
        if task is not None:
            await asyncio.shield(task)

    # ----- generation -----

    async def generate(self) -> GenerationResult | None:
        """
        Run one fusion attempt.

        Returns None when ignored: already pending, or invalidated by reset() while in flight.
        """
        if self.generation_status is GenerationStatus.PENDING:
            return None
        if not self.has_both_images:
            error = InputValidationError("Both a character and a product image are required")
            outcome = GenerationResult(failure_type=FailureType.VALIDATION, detail=error.detail)
            self.outcome = outcome
            self.generation_status = GenerationStatus.FAILED
            return outcome

        self.outcome = None
        self.generation_status = GenerationStatus.PENDING
        self._generation_seq += 1
        seq = self._generation_seq
        character, product = self.character, self.product
        try:
            image = await self._fetch_fused_image(
                character.to_encoded(),
                product.to_encoded(),
                self.instruction,
                self.aspect_ratio,
            )
            outcome = GenerationResult(image=image)
        except Exception as e:
            failure_type = classify_failure(e)
            logger.warning(
                "session_generation_failed",
                extra={"session_id": self.session_id, "failure_type": failure_type.value, "error": str(e)},
                exc_info=failure_type is FailureType.TRANSPORT,
            )
            outcome = GenerationResult(failure_type=failure_type, detail=dict(getattr(e, "detail", {}) or {}))
        except BaseException:
            # Cancelled or interrupted: the session must not stay stuck in PENDING.
            if seq == self._generation_seq and self.generation_status is GenerationStatus.PENDING:
                self.generation_status = GenerationStatus.IDLE
                logger.info("generation_cancelled", extra={"session_id": self.session_id})
            raise

        if seq != self._generation_seq:
            logger.info("generation_discarded_stale", extra={"session_id": self.session_id})
            return None
        self.outcome = outcome
        self.generation_status = GenerationStatus.SUCCEEDED if outcome.ok else GenerationStatus.FAILED
        return outcome

    # ----- reset -----

    def reset(self) -> None:
        """Clear everything, even mid-flight; pending calls are abandoned."""
        for image in (self.character, self.product):
            if image is not None:
                image.release()
        self.character = None
        self.product = None
        self.instruction = ""
        self.aspect_ratio = AspectRatio.ORIGINAL
        self.dynamic_suggestions = []
        self.suggestions_status = SuggestionsStatus.IDLE
        self.generation_status = GenerationStatus.IDLE
        self.outcome = None
        self._suggestion_seq += 1
        self._generation_seq += 1
        self._suggestion_task = None

    # ----- presentation -----

    @property
    def error(self) -> ErrorOut | None:
        if self.outcome is None or self.outcome.failure_type is None:
            return None
        message = user_message(self.outcome.failure_type)
        return ErrorOut(kind=self.outcome.failure_type.value, title=message.title, message=message.message)

    def snapshot(self) -> SessionState:
        image = self.outcome.image if self.outcome is not None else None
        return SessionState(
            session_id=self.session_id,
            character=_image_info(self.character),
            product=_image_info(self.product),
            instruction=self.instruction,
            aspect_ratio=self.aspect_ratio.value,
            suggestions_status=self.suggestions_status.value,
            suggestions=self.suggestions,
            suggestions_dynamic=self.suggestions_status is SuggestionsStatus.READY and bool(self.dynamic_suggestions),
            generation_status=self.generation_status.value,
            can_generate=self.can_generate,
            image=image.data_url if image is not None else None,
            media_type=image.media_type if image is not None else None,
            error=self.error,
        )


def _image_info(image: UploadedImage | None) -> ImageInfo | None:
    if image is None:
        return None
    return ImageInfo(media_type=image.media_type, size_bytes=len(image.content), preview_id=image.preview_id)


class SessionStore:
    """
    In-memory session registry with idle TTL.
    State lives only for the process lifetime.
    """

    def __init__(self, ttl_seconds: int | None = None, **session_kwargs: Any) -> None:
        self.default_ttl = ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds
        self._sessions: dict[str, tuple[FusionSession, float]] = {}
        self._session_kwargs = session_kwargs

    def _evict_expired(self) -> None:
        now = time.monotonic()
        expired = [sid for sid, (_, seen) in self._sessions.items() if now - seen > self.default_ttl]
        for sid in expired:
            session, _ = self._sessions.pop(sid)
            session.reset()
            logger.info("session_expired", extra={"session_id": sid})

    def create(self) -> FusionSession:
        self._evict_expired()
        session = FusionSession(**self._session_kwargs)
        self._sessions[session.session_id] = (session, time.monotonic())
        return session

    def get(self, session_id: str) -> FusionSession:
        """Raises KeyError if the session is unknown or expired."""
        self._evict_expired()
        session, _ = self._sessions[session_id]
        self._sessions[session_id] = (session, time.monotonic())
        return session

    def delete(self, session_id: str) -> None:
        entry = self._sessions.pop(session_id, None)
        if entry is not None:
            entry[0].reset()

    def __len__(self) -> int:
        return len(self._sessions)


session_store = SessionStore()
