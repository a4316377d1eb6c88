"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "Content Guard NSFW Moderation"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD

    # ==========================================================================
    # Decision Thresholds
    # ==========================================================================
    # confidence > NSFW_CONFIDENCE_THRESHOLD -> nsfw (blocked)
    # confidence > NSFW_UNCERTAIN_THRESHOLD  -> uncertain (allowed)
    NSFW_CONFIDENCE_THRESHOLD: float = 0.7
    NSFW_UNCERTAIN_THRESHOLD: float = 0.4

    # ==========================================================================
    # Upload Limits
    # ==========================================================================
    MAX_IMAGE_SIZE_MB: int = 50
    MAX_IMAGE_DIMENSION: int = 4096  # Per side, in pixels

    # ==========================================================================
    # ML Settings
    # ==========================================================================
    ML_MODEL_CACHE_DIR: Path = Path("./.model-cache")
    NSFW_MODEL_URL: str = "https://github.com/yahoo/open_nsfw/raw/master/nsfw.onnx"
    NSFW_MODEL_FILENAME: str = "nsfw.onnx"
    MODEL_DOWNLOAD_TIMEOUT_SECONDS: float = 60.0
    MODEL_INIT_TIMEOUT_SECONDS: float = 120.0
    MODEL_PRELOAD: bool = False  # Warm the engine during startup

    # ==========================================================================
    # Audit Settings
    # ==========================================================================
    AUDIT_LOG_CAPACITY: int = 10000

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
