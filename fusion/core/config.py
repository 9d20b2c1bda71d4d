"""
Application configuration.
All settings are loaded from environment variables (or .env).
The Gemini credential is optional at startup: it is checked on every call.
"""
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The API key may be given as GEMINI_API_KEY or API_KEY.
    """

    # ===========================================
    # APPLICATION
    # ===========================================
    # Comma-separated (e.g. http://localhost:5173,http://localhost:3000). Empty = defaults in main.py.
    cors_origins: str = ""

    # ===========================================
    # GOOGLE GEMINI
    # ===========================================
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("gemini_api_key", "api_key"),
    )  # Get from https://aistudio.google.com/apikey
    gemini_api_endpoint: str = "https://generativelanguage.googleapis.com"
    gemini_suggestion_model: str = "gemini-2.5-flash"
    gemini_fusion_model: str = "gemini-2.5-flash-image"
    gemini_timeout: float = 120.0  # generation + image body download

    # ===========================================
    # SUGGESTIONS
    # ===========================================
    suggestion_count: int = 4
    suggestion_max_items: int = 8

    # ===========================================
    # UPLOADS & DOWNLOADS
    # ===========================================
    max_file_size_mb: int = 10
    allowed_image_types: str = "image/png,image/jpeg,image/webp,image/gif,image/heic,image/heif"
    default_jpeg_quality: float = 0.92

    # ===========================================
    # SESSIONS
    # ===========================================
    session_ttl_seconds: int = 3600  # 1 hour

    # ===========================================
    # LOGGING
    # ===========================================
    log_file: str | None = None
    log_max_bytes: int = 10_000_000
    log_backup_count: int = 5

    @field_validator("allowed_image_types")
    @classmethod
    def normalize_image_types(cls, v: str) -> str:
        return v.lower().strip()

    @field_validator("default_jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("default_jpeg_quality must be in (0, 1]")
        return v

    @property
    def allowed_image_types_set(self) -> set[str]:
        """Accepted media types as a set."""
        return {t.strip() for t in self.allowed_image_types.split(",") if t.strip()}

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
