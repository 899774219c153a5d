"""Configuration management using Pydantic Settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from ``IDEAMESH_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDEAMESH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # AI completion service (OpenAI-compatible endpoint)
    llm_base_url: str = "http://localhost:11434/v1"
    llm_model: str = "qwen3:8b"
    llm_api_key: str = "ollama"
    llm_timeout: float = 60.0
    llm_temperature: float = Field(
        default=0.4,
        description="Sampling temperature for chat and suggestion flows",
    )
    llm_max_retries: int = Field(
        default=2,
        description="Transport-level retries for connection errors only",
    )

    # Session behaviour
    drag_debounce_seconds: float = Field(
        default=0.5,
        description="Trailing delay before a dragged node position is persisted",
    )

    # Canvas used for default node placement and layout requests
    canvas_width: float = 1280
    canvas_height: float = 800


settings = Settings()
