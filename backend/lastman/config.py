"""
backend/lastman/config.py

Purpose:
    Central settings loading for the competition service.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    # Transactions need a replica set (a single-node one is enough).
    MONGO_URI: str
    MONGO_DB: str = "lastman"
    JWT_SECRET: str
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after token expiry
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    # Competition rules
    MAX_LIVES_PER_PLAYER: int = 5
    STANDINGS_MAX_PLAYERS: int = 1000

    # Scheduled resolution sweep
    RESOLVER_SWEEP_ENABLED: bool = True
    RESOLVER_SWEEP_MINUTES: int = 10
    RESOLVER_SMART_SLEEP_HOURS: int = 6

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
