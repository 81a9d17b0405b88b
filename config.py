# backend/config.py

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = "sqlite:///./chat_portal.db"
DEFAULT_LM_STUDIO_URL = "http://localhost:1234/v1"


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    jwt_secret: str = "change_this_to_a_random_string"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    lm_studio_url: str = DEFAULT_LM_STUDIO_URL

    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        frontend = os.getenv("FRONTEND_URL", "http://localhost:5173")
        origins = [frontend]
        if "http://localhost:3000" not in origins:
            origins.append("http://localhost:3000")  # docker frontend
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            jwt_secret=os.getenv("JWT_SECRET", "change_this_to_a_random_string"),
            jwt_expire_minutes=_get_int("JWT_EXPIRE_MINUTES", 60 * 24 * 7),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            google_api_key=os.getenv("GOOGLE_API_KEY") or None,
            lm_studio_url=os.getenv("LM_STUDIO_URL", DEFAULT_LM_STUDIO_URL),
            cors_origins=origins,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


# ─── Dependency: get_settings ──────────────────────────────────────────────────
@lru_cache()
def get_settings() -> Settings:
    return Settings.from_env()
