"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with HOOKRELAY_ prefix.
No config files — the relay only needs a listen address and a few
delivery knobs.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via HOOKRELAY_* env vars."""

    # Server
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 4000

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # CORS: the watch UI is usually served from another origin
    cors_origins: list[str] = ["*"]

    # Delivery
    send_timeout_seconds: float = 5.0  # write deadline per subscriber push
    subscriber_queue_size: int = 100  # pending envelopes per subscriber

    model_config = {"env_prefix": "HOOKRELAY_"}

    @model_validator(mode="after")
    def validate_delivery_settings(self):
        """Reject delivery knobs that would stall or drop everything."""
        if self.send_timeout_seconds <= 0:
            raise ValueError("HOOKRELAY_SEND_TIMEOUT_SECONDS must be positive")
        if self.subscriber_queue_size < 1:
            raise ValueError("HOOKRELAY_SUBSCRIBER_QUEUE_SIZE must be at least 1")
        return self


# Default instance; create_app() falls back to this
settings = Settings()
