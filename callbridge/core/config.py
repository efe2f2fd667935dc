"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str

    # ElevenLabs Conversational AI
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_agent_id: Optional[str] = None
    elevenlabs_webhook_secret: Optional[str] = None
    elevenlabs_api_url: str = "https://api.elevenlabs.io/v1"
    agent_connect_timeout_seconds: float = 10.0

    # Twilio
    twilio_auth_token: Optional[str] = None
    twilio_validate_signature: bool = False

    # Public URL used for the media stream WebSocket (e.g. https://bridge.example.com)
    base_url: Optional[str] = None

    # Graceful shutdown
    shutdown_timeout_seconds: float = 300.0
    shutdown_poll_interval_seconds: float = 5.0
    shutdown_hard_exit_seconds: float = 10.0

    # Server
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


settings = Settings()
