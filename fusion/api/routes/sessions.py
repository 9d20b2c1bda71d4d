"""
Session API: drives the per-session orchestration state machine.
Suggestions run in the background after uploads; poll GET for progress.
"""
import logging

from fastapi import APIRouter, File, HTTPException, UploadFile, status
from fastapi.responses import Response

from fusion.api.routes.errors import http_error
from fusion.schemas.fusion import AspectRatioIn, InstructionIn, SessionState
from fusion.services.image_generation import ImageGenerationError
from fusion.services.state import FusionSession, ImageSlot, UploadedImage, session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


def _get_session(session_id: str) -> FusionSession:
    try:
        return session_store.get(session_id)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found") from None


@router.post("", response_model=SessionState, status_code=status.HTTP_201_CREATED)
async def create_session() -> SessionState:
    session = session_store.create()
    logger.info("session_created", extra={"session_id": session.session_id})
    return session.snapshot()


@router.get("/{session_id}", response_model=SessionState)
async def get_session(session_id: str) -> SessionState:
    return _get_session(session_id).snapshot()


@router.put("/{session_id}/images/{slot}", response_model=SessionState)
async def upload_image(session_id: str, slot: ImageSlot, file: UploadFile = File(...)) -> SessionState:
    session = _get_session(session_id)
    content = await file.read()
    try:
        image = UploadedImage.create(content, file.content_type)
    except ImageGenerationError as e:
        raise http_error(e) from e
    session.set_image(slot, image)
    return session.snapshot()


@router.get("/{session_id}/images/{slot}")
async def preview_image(session_id: str, slot: ImageSlot) -> Response:
    """Preview of the current image in a slot; 404 once released."""
    image = _get_session(session_id).get_image(slot)
    if image is None or image.released:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No image")
    return Response(content=image.content, media_type=image.media_type)


@router.put("/{session_id}/instruction", response_model=SessionState)
async def set_instruction(session_id: str, body: InstructionIn) -> SessionState:
    session = _get_session(session_id)
    session.set_instruction(body.instruction)
    return session.snapshot()


@router.put("/{session_id}/aspect-ratio", response_model=SessionState)
async def set_aspect_ratio(session_id: str, body: AspectRatioIn) -> SessionState:
    session = _get_session(session_id)
    try:
        session.set_aspect_ratio(body.aspect_ratio)
    except ImageGenerationError as e:
        raise http_error(e) from e
    return session.snapshot()


@router.post("/{session_id}/generate", response_model=SessionState)
async def generate(session_id: str) -> SessionState:
    """Runs one fusion attempt; a trigger while one is pending returns the current state unchanged."""
    session = _get_session(session_id)
    await session.generate()
    return session.snapshot()


@router.post("/{session_id}/reset", response_model=SessionState)
async def reset(session_id: str) -> SessionState:
    session = _get_session(session_id)
    session.reset()
    return session.snapshot()


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str) -> Response:
    session_store.delete(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
