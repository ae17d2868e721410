"""Admin endpoints — session maintenance.

Protected by the ``ADMIN_API_KEY`` setting.  Every request must include an
``X-Admin-Key`` header whose value matches.  Returns 401 if missing, 403 if
wrong or not configured.
"""

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_engine.service import ConversationService

from leadflow_server.dependencies import get_db, get_service, require_admin_key

router = APIRouter(prefix="/admin", tags=["admin"])


class CleanupResult(BaseModel):
    """Response body for maintenance operations."""
    affected_rows: int
    action: str


@router.post("/abandon-idle")
async def abandon_idle(
    request: Request,
    idle_minutes: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
    _admin: str = Depends(require_admin_key),
) -> CleanupResult:
    """Mark active sessions idle for ``idle_minutes`` as abandoned.

    Defaults to the server's ``SESSION_IDLE_MINUTES`` setting.
    """
    if idle_minutes is None:
        idle_minutes = request.app.state.settings.session_idle_minutes
    affected = await service.abandon_idle_sessions(db, idle_minutes=idle_minutes)
    return CleanupResult(affected_rows=affected, action="abandon_idle")
