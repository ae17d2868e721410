"""Turn endpoints — the Turn API.

``GET`` returns what the UI should show for the session right now.
``POST`` submits one user turn: either pre-extracted answer pairs or raw
text for the configured extractor.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_engine.models.session import Extraction, TurnResponse
from leadflow_engine.service import ConversationService

from leadflow_server.dependencies import get_client_id, get_db, get_service

router = APIRouter(tags=["turns"])


# ------------------------------------------------------------------
# Request models
# ------------------------------------------------------------------

class TurnRequest(BaseModel):
    """Body for POST /sessions/{session_id}/turn.

    ``extracted`` takes precedence; ``text`` is only sent to the extractor
    when no pairs are given.  An empty body counts as a failed attempt.
    """
    extracted: list[Extraction] | None = None
    text: str | None = None


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/sessions/{session_id}/turn")
async def get_current_turn(
    session_id: str,
    client_id: str = Depends(get_client_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
) -> TurnResponse:
    """Return the current prompt, choices and advice for the session."""
    return await service.get_current_turn(db, client_id=client_id, session_id=session_id)


@router.post("/sessions/{session_id}/turn")
async def process_turn(
    session_id: str,
    body: TurnRequest,
    client_id: str = Depends(get_client_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_service),
) -> TurnResponse:
    """Process one user turn.

    Returns 404 for an unknown session and 400 when the session is no
    longer active.
    """
    return await service.process_turn(
        db,
        client_id=client_id,
        session_id=session_id,
        extracted=body.extracted,
        raw_text=body.text,
    )
