from fastapi import APIRouter, Response

from fusion.core.config import settings


router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Liveness probe - always returns 200 if app is running."""
    return {"status": "ok"}


@router.get("/ready")
def readiness(response: Response) -> dict:
    """Readiness probe - returns 503 if the Gemini API key is not configured."""
    if not (settings.gemini_api_key or "").strip():
        response.status_code = 503
        return {"status": "not_ready", "error": "API key not configured"}
    return {"status": "ready"}
