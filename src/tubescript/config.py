"""Configuration management for tubescript."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application defaults with environment variable overrides.

    All settings can be overridden via environment variables
    prefixed with TUBESCRIPT_ (e.g. TUBESCRIPT_HTTP_TIMEOUT).

    Only the CLI and MCP server read these; pipeline components
    receive explicit values instead.
    """

    model_config = {"env_prefix": "TUBESCRIPT_", "frozen": True}

    # Platform handshake
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    accept_language: str = "en-US,en;q=0.9"
    innertube_client_name: str = "WEB"
    innertube_client_version: str = "2.20231219.00.00"
    interface_language: str = "en"
    region: str = "US"
    http_timeout: float = Field(default=30.0, gt=0, description="Seconds per platform request")

    # Transcript
    preferred_languages: str = ""  # comma-separated, e.g. "de,fr"
    local_video_extension: str = "mp4"

    # LLM
    llm_timeout_minutes: float = Field(default=1.0, gt=0)
    rate_limit_backoff_seconds: float = Field(default=60.0, ge=0)

    # Server
    host: str = "127.0.0.1"
    port: int = 9093


# Module-level singleton, read only at the application edges
settings = Settings()
