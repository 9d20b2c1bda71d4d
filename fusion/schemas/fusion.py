from pydantic import BaseModel, Field


class ErrorOut(BaseModel):
    kind: str
    title: str
    message: str


class EncodedImageOut(BaseModel):
    data: str
    mime_type: str


class SuggestionsOut(BaseModel):
    suggestions: list[str]
    degraded: bool = Field(False, description="True when the static list is returned because the fetch failed")


class FusedImageOut(BaseModel):
    image: str = Field(..., description="data: URL ready to display")
    media_type: str


class DownloadIn(BaseModel):
    image: str = Field(..., description="data: URL or bare base64")
    format: str = "png"
    quality: float | None = Field(None, ge=0, le=1)


class InstructionIn(BaseModel):
    instruction: str = ""


class AspectRatioIn(BaseModel):
    aspect_ratio: str = "original"


class ImageInfo(BaseModel):
    media_type: str
    size_bytes: int
    preview_id: str


class SessionState(BaseModel):
    session_id: str
    character: ImageInfo | None = None
    product: ImageInfo | None = None
    instruction: str = ""
    aspect_ratio: str = "original"
    suggestions_status: str
    suggestions: list[str]
    suggestions_dynamic: bool = False
    generation_status: str
    can_generate: bool = False
    image: str | None = None
    media_type: str | None = None
    error: ErrorOut | None = None
