"""Session management endpoints — create, get, list sessions.

All endpoints require the ``X-Client-ID`` header.  Session identity is the
(client_id, session_id) pair, enforced by a unique constraint in the
database.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_engine.models.session import SessionInfo
from leadflow_engine.service import ConversationService

from leadflow_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from leadflow_server.dependencies import get_client_id, get_db, get_service

router = APIRouter(tags=["sessions"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""
    session_id: str
    flow_id: str
    # Answers known before the conversation starts (e.g. from a landing page)
    seed_answers: dict[str, str] | None = None


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    client_id: str = Depends(get_client_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
) -> SessionInfo:
    """Create a new conversation session.

    Returns 201 on success, 404 for an unknown flow, 409 if the
    (client_id, session_id) pair already exists.
    """
    return await service.create_session(
        db,
        client_id=client_id,
        session_id=body.session_id,
        flow_id=body.flow_id,
        seed_answers=body.seed_answers,
    )


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    client_id: str = Depends(get_client_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
) -> SessionInfo:
    """Get session info by session_id.  Raises 404 if it does not exist."""
    info = await service.get_session(db, client_id=client_id, session_id=session_id)
    if info is None:
        raise ValueError(f"Session not found: session_id={session_id}")
    return info


@router.get("/sessions")
async def list_sessions(
    client_id: str = Depends(get_client_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> list[SessionInfo]:
    """List sessions for the current client, most recent first."""
    return await service.list_sessions(db, client_id=client_id, limit=limit, offset=offset)
