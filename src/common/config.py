"""Configuration management for the resumable translation service."""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Logging
    log_level: str = Field(default="INFO")
    log_dir: str = Field(default="./logs")  # Dated service log files land here

    # Translation Service (OpenAI)
    openai_api_key: Optional[str] = Field(default=None)
    openai_model: str = Field(default="gpt-5-nano")
    openai_max_tokens: int = Field(default=16384)
    openai_temperature: float = Field(
        default=0.3
    )  # Ignored for reasoning models that only accept the default
    openai_timeout: float = Field(default=120.0)  # Per-request timeout in seconds

    # Chunk Planning
    translation_soft_token_limit: int = Field(
        default=2800
    )  # Cut at the next sentence end once reached
    translation_hard_token_limit: int = Field(
        default=3800
    )  # Cut unconditionally once reached

    # Retry Configuration
    translation_max_retries: int = Field(
        default=3
    )  # Maximum number of retry attempts after initial try
    translation_retry_base_delay: float = Field(
        default=1.0
    )  # Back-off is base_delay * 2^attempt seconds

    # Chunk Loop
    translation_inter_chunk_delay: float = Field(
        default=0.3
    )  # Pause between chunk requests (cancellable)
    translation_context_segments: int = Field(
        default=3
    )  # Trailing segments carried as context into the next chunk
    translation_thinking_level: str = Field(default="minimal")
    translation_default_target_language: str = Field(default="Korean")
    translation_default_source_language: str = Field(default="Auto")
    resume_enabled: bool = Field(
        default=True
    )  # Resume partial snapshots instead of restarting from chunk 0

    # Job Store
    job_store_backend: str = Field(default="file")  # "file" or "redis"
    job_store_path: str = Field(default="./storage/jobs")
    redis_url: str = Field(default="redis://localhost:6379")
    snapshot_max_entries: int = Field(default=100)
    snapshot_ttl_days: int = Field(default=30)

    # Usage Accounting
    usage_retention_days: int = Field(default=30)

    # API Configuration
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    cors_allowed_origins: Optional[str] = Field(default=None)

    @field_validator("job_store_backend")
    @classmethod
    def validate_job_store_backend(cls, v: str) -> str:
        """
        Normalize and validate the job store backend name.

        Args:
            v: Backend name from the environment

        Returns:
            Lowercased backend name

        Raises:
            ValueError: If backend is not supported
        """
        backend = v.strip().lower()
        if backend not in ("file", "redis"):
            raise ValueError(
                f"job_store_backend must be 'file' or 'redis', got {v!r}"
            )
        return backend

    class Config:
        # Find .env file relative to project root
        # This file is in src/common/, so go up 2 levels to project root
        _project_root = Path(__file__).parent.parent.parent
        env_file = str(_project_root / ".env")
        case_sensitive = False


# Global settings instance
settings = Settings()
