from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Exported composites
    EXPORT_DIR: str = "/srv/photo-stitch/exports"
    EXPORT_URL_PREFIX: str = "/api/v1/stitch/exports"

    # Uploads
    MAX_FILE_SIZE: int = 50 * 1024 * 1024  # 50MB per file
    MAX_FILES: int = 100
    ALLOWED_EXTENSIONS: set = {
        ".jpg",
        ".jpeg",
        ".png",
        ".webp",
        ".gif",
        ".bmp",
        ".tif",
        ".tiff",
    }
    # Live mode also takes the paired video clips
    LIVE_ALLOWED_EXTENSIONS: set = {
        ".jpg",
        ".jpeg",
        ".png",
        ".heic",
        ".mov",
        ".mp4",
    }

    # Concurrent decode workers per stitch request
    LOAD_WORKERS: int = 8

    # External live-capture (Live Photo) service
    LIVE_SERVICE_URL: str = Field(
        default="http://localhost:8000", description="Base URL of the live-capture service"
    )
    LIVE_SERVICE_TIMEOUT: int = 120  # seconds; the service merges video
    LIVE_SERVICE_RETRIES: int = 2

    # CORS for the web client
    CORS_ORIGINS: list = ["http://localhost:3000", "http://localhost:5173"]

    # Development settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
