"""Session-store connection settings.

Conversation sessions live in PostgreSQL.  The connection is described
either by ``DATABASE_URL`` or by the ``PG_HOST`` / ``PG_PORT`` / ``PG_USER``
/ ``PG_PASSWORD`` / ``PG_DATABASE`` parts; when both are present the URL
wins.  Pool behaviour is tuned with ``PG_POOL_SIZE``, ``PG_MAX_OVERFLOW``,
``PG_POOL_RECYCLE`` and ``PG_ECHO``.

The runtime engine talks asyncpg; Alembic migrations run on psycopg2, so
the same settings hand out a URL for each driver.
"""

import os
from dataclasses import dataclass

_ASYNC_SCHEME = "postgresql+asyncpg://"
_SYNC_SCHEME = "postgresql://"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class DbSettings:
    url: str | None = None
    host: str = "localhost"
    port: int = 5432
    user: str = "leadflow"
    password: str = "leadflow"
    database: str = "leadflow"
    pool_size: int = 5
    max_overflow: int = 10
    # Seconds before a pooled connection is replaced
    pool_recycle: int = 1800
    echo: bool = False

    def _base_url(self) -> str:
        if self.url:
            return self.url
        return f"{_SYNC_SCHEME}{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    @property
    def sync_url(self) -> str:
        return self._base_url().replace(_ASYNC_SCHEME, _SYNC_SCHEME, 1)

    @property
    def async_url(self) -> str:
        url = self._base_url()
        if url.startswith(_SYNC_SCHEME):
            return _ASYNC_SCHEME + url[len(_SYNC_SCHEME):]
        return url


def load_db_settings() -> DbSettings:
    return DbSettings(
        url=os.getenv("DATABASE_URL") or None,
        host=os.getenv("PG_HOST", "localhost"),
        port=_env_int("PG_PORT", 5432),
        user=os.getenv("PG_USER", "leadflow"),
        password=os.getenv("PG_PASSWORD", "leadflow"),
        database=os.getenv("PG_DATABASE", "leadflow"),
        pool_size=_env_int("PG_POOL_SIZE", 5),
        max_overflow=_env_int("PG_MAX_OVERFLOW", 10),
        pool_recycle=_env_int("PG_POOL_RECYCLE", 1800),
        echo=os.getenv("PG_ECHO", "").lower() in ("1", "true", "yes"),
    )


def get_sync_url() -> str:
    """psycopg2 URL for Alembic."""
    return load_db_settings().sync_url
