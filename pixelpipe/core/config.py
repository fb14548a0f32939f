"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "PixelPipe Image Processing Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # ==========================================================================
    # Storage Layout (working directories, no database)
    # ==========================================================================
    UPLOAD_DIR: Path = Path("./data/uploads")
    OUTPUT_DIR: Path = Path("./data/output")
    TEMP_DIR: Path = Path("./data/temp")

    # Served at / when the directory exists
    PUBLIC_DIR: Path = Path("./public")

    MAX_UPLOAD_SIZE_BYTES: int = 50 * 1024 * 1024  # 50MB

    # ==========================================================================
    # Cleanup Settings
    # ==========================================================================
    CLEANUP_INTERVAL_SECONDS: float = 60 * 60  # 1 hour
    CLEANUP_MAX_AGE_SECONDS: float = 24 * 60 * 60  # 24 hours

    # ==========================================================================
    # Pipeline Settings
    # ==========================================================================
    # RealESRGAN
    UPSCALE_FACTOR: int = 4
    UPSCALE_BACKEND: str = "realesrgan"  # realesrgan, lanczos
    REALESRGAN_MODEL_PATH: str = (
        "https://github.com/xinntao/Real-ESRGAN/releases/download/v0.1.0/RealESRGAN_x4plus.pth"
    )
    TILE_SIZE: int = 512  # For VRAM management

    # Rembg
    REMBG_MODEL: str = "u2net"

    # Upper bound on batch items processed at the same time
    BATCH_CONCURRENCY: int = 4

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development
    LOG_FILE: Optional[str] = None

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "*"

    @property
    def working_directories(self) -> List[Path]:
        """Directories swept by the cleanup service."""
        return [self.UPLOAD_DIR, self.OUTPUT_DIR, self.TEMP_DIR]


# Global settings instance
settings = Settings()
