"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with AGENTHQ_ prefix.
Server and client defaults live side by side so a single process (or the
CLI) can read its realtime knobs from the same place.

Learn: pydantic-settings auto-loads from environment, validates types,
provides defaults. No config files.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via AGENTHQ_* env vars."""

    # Redis (empty string = single-process mode, local fan-out only)
    redis_url: str = "redis://localhost:6379/0"

    # Auth
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    api_key_prefix: str = "ahq_"

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    ws_path: str = "/ws"

    # CORS
    cors_origins: list[str] = [
        "http://localhost:3000",
    ]

    # Realtime client defaults (seconds)
    ws_url: str = "ws://localhost:8000/ws"
    ws_reconnect_base_delay: float = 1.0
    ws_reconnect_max_delay: float = 30.0
    ws_heartbeat_interval: float = 30.0
    ws_polling_interval: float = 30.0

    model_config = {"env_prefix": "AGENTHQ_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "AGENTHQ_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                'python -c "import secrets; print(secrets.token_urlsafe(32))"'
            )
        return self


# Singleton — import this everywhere
settings = Settings()
