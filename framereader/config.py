"""Application settings from environment variables."""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings from environment."""

    # API Keys
    anthropic_api_key: str = ""
    assemblyai_api_key: str = ""

    # Configuration
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # Queue
    max_concurrent_jobs: int = 2
    max_queue_size: int = 20

    # Temp storage and expiry
    temp_dir: str = "./tmp"
    job_expiry_seconds: float = 30 * 60
    cleanup_interval_seconds: float = 5 * 60
    max_upload_bytes: int = 2 * 1024 * 1024 * 1024

    # Download
    download_timeout_seconds: float = 120
    youtube_cookies_path: Optional[str] = None

    # Transcription
    transcription_timeout_seconds: float = 5 * 60
    transcription_poll_seconds: float = 3.0

    # Frame sampling
    max_frames: int = 40
    scene_detection_threshold: float = 0.3
    frame_resolution: int = 720
    frame_quality: int = 80

    # Models
    vision_model: str = "anthropic:claude-sonnet-4-20250514"
    vision_batch_size: int = 6
    assembly_model: str = "anthropic:claude-sonnet-4-20250514"

    model_config = {"env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
