"""Application settings from environment variables."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings from environment."""

    # Ingest limits
    max_audio_bytes: int = 25 * 1024 * 1024
    allowed_audio_types: list[str] = [
        "audio/webm",
        "audio/mp4",
        "audio/mpeg",
        "audio/wav",
        "audio/x-wav",
        "audio/ogg",
    ]
    min_audio_seconds: float = 1.0
    max_audio_seconds: float = 300.0

    # Transcription provider (submit/poll/fetch)
    transcription_api_url: str = ""
    transcription_api_key: str = ""
    transcription_language: str = "zh-CN"
    transcription_poll_interval: float = 2.0
    transcription_poll_ceiling: float = 10.0
    transcription_poll_budget: float = 120.0
    transcription_max_attempts: int = 3
    transcription_concurrency: int = 4

    # Sentiment provider (pydantic-ai agent)
    anthropic_api_key: str = ""
    sentiment_model: str = "anthropic:claude-3-5-haiku-latest"
    sentiment_timeout: float = 20.0
    sentiment_max_attempts: int = 2
    sentiment_concurrency: int = 8

    # Image provider
    image_api_url: str = ""
    image_api_key: str = ""
    image_model: str = "amazon.titan-image-generator-v1:0"
    image_timeout: float = 60.0
    image_max_attempts: int = 1
    image_concurrency: int = 2
    image_width: int = 512
    image_height: int = 512
    default_image_style: str = "abstract"

    # Retry backoff between stage attempts
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0

    # Job retention
    job_retention_hours: float = 6.0
    gc_interval_seconds: float = 300.0

    # Supabase (optional persistence)
    supabase_url: str = ""
    supabase_key: str = ""
    audio_bucket: str = "vomage-audio"
    image_bucket: str = "vomage-images"
    jobs_table: str = "pipeline_jobs"

    # Configuration
    log_level: str = "INFO"

    model_config = {"env_file": ".env"}


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
