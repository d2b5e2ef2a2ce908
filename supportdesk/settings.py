"""Runtime configuration loaded from the environment.

Values are read once and cached; tests that tweak environment variables call
:func:`reset_settings_cache` afterwards. A ``.env`` file in the working
directory is honoured through python-dotenv.
"""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclasses.dataclass(frozen=True)
class Settings:
    """Application settings shared by routers and services."""

    database_url: str | None
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_lang: str | None = None
    generation_timeout_seconds: float = 15.0
    generation_temperature: float = 0.5
    generation_max_tokens: int = 500
    chat_max_message_length: int = 1000
    chat_history_limit: int = 6
    chat_rate_limit: str = "30/minute"
    admin_ui_origins: tuple[str, ...] = ()
    sql_echo: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment with development defaults."""

    origins = os.getenv("ADMIN_UI_ORIGINS", "")
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        openai_lang=os.getenv("OPENAI_LANG") or None,
        generation_timeout_seconds=float(os.getenv("GENERATION_TIMEOUT_SECONDS", "15")),
        generation_temperature=float(os.getenv("GENERATION_TEMPERATURE", "0.5")),
        generation_max_tokens=int(os.getenv("GENERATION_MAX_TOKENS", "500")),
        chat_max_message_length=int(os.getenv("CHAT_MAX_MESSAGE_LENGTH", "1000")),
        chat_history_limit=int(os.getenv("CHAT_HISTORY_LIMIT", "6")),
        chat_rate_limit=os.getenv("CHAT_RATE_LIMIT", "30/minute"),
        admin_ui_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        sql_echo=_env_bool("SQL_ECHO", False),
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()
