"""Server settings from the environment.

Every field has a local-development default; deployments override them with
``SERVER_*`` variables (plus ``SESSION_IDLE_MINUTES``, ``ADVICE_LIMIT_PER_STATE``,
``ADMIN_API_KEY`` and ``TRUSTED_PROXY_SECRET``).
"""

import os
from dataclasses import dataclass, field

from leadflow_engine.constants import ADVICE_LIMIT_PER_STATE, SESSION_IDLE_MINUTES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


def _env_optional(name: str) -> str | None:
    return os.getenv(name) or None


def _env_origins(name: str) -> list[str]:
    return [o.strip() for o in os.getenv(name, "*").split(",") if o.strip()]


# Query() defaults are fixed at decoration time, so these are module-level
DEFAULT_PAGE_LIMIT = _env_int("DEFAULT_PAGE_LIMIT", 20)
MAX_PAGE_LIMIT = _env_int("MAX_PAGE_LIMIT", 100)


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 8080
    # ["*"] allows any origin (dev only)
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    # None: FlowStore falls back to flows/ at the repo root
    flow_dir: str | None = None
    log_level: str = "INFO"
    session_idle_minutes: int = SESSION_IDLE_MINUTES
    advice_limit: int = ADVICE_LIMIT_PER_STATE
    # Admin endpoints answer 403 while unset
    admin_api_key: str | None = None
    # When set, X-Client-ID is only trusted alongside a matching X-Proxy-Secret
    trusted_proxy_secret: str | None = None


def load_settings() -> ServerSettings:
    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=_env_int("SERVER_PORT", 8080),
        cors_origins=_env_origins("SERVER_CORS_ORIGINS"),
        flow_dir=_env_optional("SERVER_FLOW_DIR"),
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        session_idle_minutes=_env_int("SESSION_IDLE_MINUTES", SESSION_IDLE_MINUTES),
        advice_limit=_env_int("ADVICE_LIMIT_PER_STATE", ADVICE_LIMIT_PER_STATE),
        admin_api_key=_env_optional("ADMIN_API_KEY"),
        trusted_proxy_secret=_env_optional("TRUSTED_PROXY_SECRET"),
    )
