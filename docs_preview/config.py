"""Configuration using pydantic-settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with validation and constants."""

    host: str = "127.0.0.1"
    port: int = 5050
    log_level: str = "INFO"
    log_file: str | None = None
    open_browser: bool = False

    docs_dir: Path = Path("./docs")
    cache_dir: Path = Path("./cache")

    # Renderer settings
    renderer_command: str = "mmdc"
    render_concurrency: int = Field(default=5, ge=1)
    render_timeout: float = Field(default=60.0, gt=0)
    render_width: int = Field(default=5000, ge=1)
    render_height: int = Field(default=5000, ge=1)
    render_scale: int = Field(default=4, ge=1)
    # Per-client limit on the render route, e.g. "120/minute"; unset means unlimited
    render_rate_limit: str | None = None

    # Cache settings
    memory_cache_max_entries: int = Field(default=256, ge=1)
    cache_write_attempts: int = Field(default=3, ge=1)

    # Live reload settings
    watch_interval: float = Field(default=0.5, gt=0)
    watch_suffixes: list[str] = []
    sse_keepalive_seconds: float = Field(default=15.0, gt=0)
    session_queue_size: int = Field(default=100, ge=1)

    cors_origins: list[str] = ["*"]

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Accept log levels in any case."""
        return str(value).upper()

    @field_validator("watch_suffixes")
    @classmethod
    def normalize_suffixes(cls, value: list[str]) -> list[str]:
        """Make sure every suffix carries its leading dot."""
        return [suffix if suffix.startswith(".") else f".{suffix}" for suffix in value]

    @property
    def viewer_url(self) -> str:
        """URL the viewer is reachable at."""
        return f"http://{self.host}:{self.port}"

    class Config:
        """Pydantic config."""

        env_prefix = "DOCS_"
        env_file = ".env"
        extra = "ignore"


settings = Settings()


def get_settings() -> Settings:
    """Get settings instance (for dependency injection)."""
    return settings
