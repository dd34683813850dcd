"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Club identity (home side of every fixture played at home)
    club_name: str = "Capital City FC"

    # Durable store
    database_url: str = "sqlite:///./matchday.db"
    database_echo: bool = False

    # Claude text generation (template generator is used when unset)
    anthropic_api_key: Optional[str] = None
    generation_model: str = "claude-3-5-haiku-latest"
    generation_max_tokens: int = 120
    generation_timeout_seconds: float = 20.0

    # Live feed
    feed_queue_size: int = 256
    feed_heartbeat_seconds: float = 15.0
    feed_reconnect_attempts: int = 5

    # Push notifications (delivery is handled by the configured sink)
    push_notifications_enabled: bool = True
    push_webhook_url: Optional[str] = None
    push_timeout_seconds: float = 10.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
