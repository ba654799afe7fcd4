"""
Configuration.

Settings are read from the process environment, after loading a ``.env``
file if one is present:

    FORMULA_SUGGESTIONS_URL      suggestion endpoint (required for lookups)
    FORMULA_SUGGESTIONS_TIMEOUT  request timeout in seconds (default 10)
    FORMULA_CACHE_TTL            suggestion cache time-to-live in seconds (default 300)
    FORMULA_SESSION_TTL          idle API session lifetime in seconds (default 3600)
    FORMULA_LOG_LEVEL            logging level name (default INFO)
    FORMULA_HISTORY_FILE         REPL history file (default ~/.formula_tags_history)
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_HISTORY_FILE = os.path.expanduser("~/.formula_tags_history")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class Settings(BaseModel):
    """Runtime settings for the editor front ends."""
    suggestions_url: Optional[str] = None
    suggestions_timeout: float = Field(10.0, gt=0, description="Request timeout in seconds")
    cache_ttl: float = Field(300.0, ge=0, description="Suggestion cache time-to-live in seconds")
    session_ttl: float = Field(3600.0, gt=0, description="Idle API session lifetime in seconds")
    log_level: str = "INFO"
    history_file: str = DEFAULT_HISTORY_FILE

    @field_validator('suggestions_url')
    @classmethod
    def blank_url_is_unset(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator('log_level')
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Build settings from the environment (and a .env file, if any)."""
        load_dotenv(env_file)
        values = {
            'suggestions_url': os.getenv("FORMULA_SUGGESTIONS_URL"),
            'suggestions_timeout': os.getenv("FORMULA_SUGGESTIONS_TIMEOUT"),
            'cache_ttl': os.getenv("FORMULA_CACHE_TTL"),
            'session_ttl': os.getenv("FORMULA_SESSION_TTL"),
            'log_level': os.getenv("FORMULA_LOG_LEVEL"),
            'history_file': os.getenv("FORMULA_HISTORY_FILE"),
        }
        return cls(**{k: v for k, v in values.items() if v is not None})


def configure_logging(settings: Settings) -> None:
    """Configure root logging the same way for every entry point."""
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
