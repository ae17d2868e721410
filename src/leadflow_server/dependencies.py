"""Request dependencies: DB session, engine singletons, caller identity.

The repository flushes but never commits; ``get_db`` owns the transaction,
so a turn whose write fails leaves the stored session as it was.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_db.engine import session_scope
from leadflow_engine.service import ConversationService
from leadflow_engine.store import FlowStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with session_scope() as session:
        yield session


def get_service(request: Request) -> ConversationService:
    return request.app.state.service


def get_store(request: Request) -> FlowStore:
    return request.app.state.store


def _require_header(value: str | None, header: str) -> str:
    if not value:
        raise HTTPException(status_code=401, detail=f"{header} header is required")
    return value


def _same_secret(provided: str, expected: str) -> bool:
    # Constant-time comparison
    return hmac.compare_digest(provided.encode(), expected.encode())


async def get_client_id(
    request: Request,
    x_client_id: str | None = Header(None, alias="X-Client-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> str:
    """Tenant identity from ``X-Client-ID`` (401 when missing).

    With ``TRUSTED_PROXY_SECRET`` configured the header is only accepted
    next to a matching ``X-Proxy-Secret``; anything else is a 403.
    """
    client_id = _require_header(x_client_id, "X-Client-ID")

    expected = request.app.state.settings.trusted_proxy_secret
    if expected and not (x_proxy_secret and _same_secret(x_proxy_secret, expected)):
        raise HTTPException(status_code=403, detail="Missing or invalid X-Proxy-Secret")
    return client_id


async def require_admin_key(
    request: Request,
    x_admin_key: str | None = Header(None, alias="X-Admin-Key"),
) -> str:
    """403 while ``ADMIN_API_KEY`` is unset or the key is wrong, 401 when absent."""
    expected = request.app.state.settings.admin_api_key
    if not expected:
        raise HTTPException(status_code=403, detail="Admin endpoints are disabled")
    key = _require_header(x_admin_key, "X-Admin-Key")
    if not _same_secret(key, expected):
        raise HTTPException(status_code=403, detail="Invalid admin key")
    return key
