"""
Runtime settings, read from the environment (and a ``.env`` file if one is
found from the working directory).
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv, find_dotenv

_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path)

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///codeflow.db"
DEFAULT_PISTON_API_URL = "https://emkc.org/api/v2/piston"
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on", "enabled"}


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    owner_id: str = "admin"
    admin_token: str = ""
    log_level: str = "INFO"
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])

    store_timeout_sec: float = 5.0
    cascade_timeout_sec: float = 10.0
    repath_descendants_on_rename: bool = False

    piston_api_url: str = DEFAULT_PISTON_API_URL
    execution_timeout_sec: float = 10.0

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.2
    openai_max_tokens: int = 800
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash-exp"
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    openai_rate_limit: int = 50
    gemini_rate_limit: int = 100
    ai_rate_window_sec: float = 60.0
    ai_timeout_sec: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=_env_str("DATABASE_URL", DEFAULT_DATABASE_URL)
            or DEFAULT_DATABASE_URL,
            owner_id=_env_str("OWNER_ID", "admin") or "admin",
            admin_token=_env_str("ADMIN_TOKEN"),
            log_level=_env_str("LOG_LEVEL", "INFO") or "INFO",
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", ["*"]),
            store_timeout_sec=_env_float("STORE_TIMEOUT_SEC", 5.0, minimum=0.1),
            cascade_timeout_sec=_env_float("CASCADE_TIMEOUT_SEC", 10.0, minimum=0.1),
            repath_descendants_on_rename=_env_bool(
                "REPATH_DESCENDANTS_ON_RENAME", False
            ),
            piston_api_url=(
                _env_str("PISTON_API_URL", DEFAULT_PISTON_API_URL)
                or DEFAULT_PISTON_API_URL
            ).rstrip("/"),
            execution_timeout_sec=_env_float("EXECUTION_TIMEOUT_SEC", 10.0, minimum=1.0),
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_model=_env_str("OPENAI_MODEL", "gpt-4o-mini") or "gpt-4o-mini",
            openai_temperature=_env_float("OPENAI_TEMPERATURE", 0.2),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", 800, minimum=1),
            openai_base_url=(
                _env_str("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL)
                or DEFAULT_OPENAI_BASE_URL
            ).rstrip("/"),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            gemini_model=_env_str("GEMINI_MODEL", "gemini-2.0-flash-exp")
            or "gemini-2.0-flash-exp",
            gemini_base_url=(
                _env_str("GEMINI_BASE_URL", DEFAULT_GEMINI_BASE_URL)
                or DEFAULT_GEMINI_BASE_URL
            ).rstrip("/"),
            openai_rate_limit=_env_int("OPENAI_RATE_LIMIT", 50, minimum=0),
            gemini_rate_limit=_env_int("GEMINI_RATE_LIMIT", 100, minimum=0),
            ai_rate_window_sec=_env_float("AI_RATE_WINDOW_SEC", 60.0, minimum=1.0),
            ai_timeout_sec=_env_float("AI_TIMEOUT_SEC", 30.0, minimum=1.0),
        )
