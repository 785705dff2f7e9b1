"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from backend/ regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./fullhouse_agent.db"

    # Z-API gateway
    zapi_base_url: str = "https://api.z-api.io"
    zapi_timeout_seconds: float = 30.0

    # AI
    llm_timeout_seconds: float = 120.0
    history_limit: int = 20
    summary_every_n_messages: int = 10
    memory_max_per_type: int = 25

    # Lead scoring policy
    score_on_fire_threshold: int = 80
    score_hot_threshold: int = 60
    score_warm_threshold: int = 30
    score_history_limit: int = 50

    # Follow-ups
    follow_up_batch_limit: int = 50
    follow_up_poll_seconds: int = 60

    # Working hours / quiet hours are evaluated in this zone
    timezone: str = "America/Sao_Paulo"

    # Internal endpoints (cron)
    internal_api_token: str = "change-me-internal"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
