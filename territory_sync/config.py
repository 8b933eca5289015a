"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Identity (room_id, actor_id, session_cookie) comes from the surrounding application
      through environment variables (never hardcoded)
    - get_settings() is cached (lru_cache): single instance per process
    - Timer settings are milliseconds, network timeouts are seconds

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - Defaults mirror the production push server (5s reconnect, 4s heartbeats both ways)
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Services
    api_base_url: str = "http://localhost:8080"
    auth_base_url: str | None = None  # falls back to api_base_url
    realtime_path: str = "/ws/websocket"
    topic_template: str = "/topic/worlds/{room_id}"

    # Session identity (owned by the surrounding application)
    room_id: str | None = None
    actor_id: str | None = None
    session_cookie: str | None = None

    # Push channel
    reconnect_delay_ms: int = Field(5000, ge=0)
    heartbeat_incoming_ms: int = Field(4000, ge=0)
    heartbeat_outgoing_ms: int = Field(4000, ge=0)
    handshake_timeout_seconds: float = 10.0
    inbox_max_size: int = Field(256, ge=1)

    # Actions
    max_defense_bonus: int = Field(3, ge=0)
    action_timeout_seconds: float = 15.0
    reset_confirm_timeout_seconds: float = 10.0

    # API
    cors_origins: list[str] = ["http://localhost:3000"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("api_base_url", "auth_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    @property
    def realtime_url(self) -> str:
        """Push endpoint: http(s) base rewritten to ws(s)."""
        base = self.api_base_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return base + self.realtime_path

    @property
    def resolved_auth_base_url(self) -> str:
        return self.auth_base_url or self.api_base_url


@lru_cache
def get_settings() -> Settings:
    return Settings()
