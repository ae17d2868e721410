"""ConversationService — async orchestrator behind the Turn API.

Stateless service pattern: each call loads the session row, runs the pure
session controller on a copy of its state, attaches advice for the new
state, writes the result back and returns it.  No conversation state is
kept in memory between calls.

The service accepts an ``AsyncSession`` from the caller so that the caller
(typically a FastAPI dependency) controls transaction boundaries: if the
write or the commit fails, the transaction is rolled back and the stored
state is exactly what it was before the turn, so the turn can be retried.

Turns for the same (client, session) pair are serialised with an
in-process :class:`SessionLockRegistry`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from leadflow_db.models.enums import SessionStatus
from leadflow_db.models.session import ConversationSession
from leadflow_db.repository import SessionRepository

from leadflow_engine.advice import AdviceTargeter
from leadflow_engine.constants import ADVICE_LIMIT_PER_STATE, SESSION_IDLE_MINUTES
from leadflow_engine.controller import SessionController
from leadflow_engine.evaluator import RuleEvaluator
from leadflow_engine.interfaces import AdviceSource, Extractor
from leadflow_engine.locks import SessionLockRegistry
from leadflow_engine.models.machine import StateMachineConfig
from leadflow_engine.models.session import (
    Extraction,
    SessionInfo,
    SessionState,
    TurnOutcome,
    TurnResponse,
)
from leadflow_engine.prompt import PromptRenderer
from leadflow_engine.store import FlowStore
from leadflow_engine.transitions import TransitionEngine

logger = logging.getLogger(__name__)


def state_to_payload(state: SessionState) -> dict[str, Any]:
    """JSON-ready form of a session state for the repository.

    ``last_activity_at`` stays a datetime because it maps to a timestamp
    column; everything else goes into JSONB.
    """
    payload = state.model_dump(mode="json")
    payload["last_activity_at"] = state.last_activity_at
    return payload


class ConversationService:
    """Runs conversations for every flow in a :class:`FlowStore`.

    Args:
        store: a loaded :class:`FlowStore`
        controller: session controller; by default one whose rule
            evaluator resolves concept aliases from ``store.concepts``
        targeter: advice targeter sharing the same evaluator
        extractor: optional extraction collaborator for raw-text turns
        advice_source: content store; defaults to the store's YAML snapshot
        renderer: prompt renderer
        locks: per-session lock registry
        advice_limit: advice items attached per state
    """

    def __init__(
        self,
        store: FlowStore,
        *,
        controller: SessionController | None = None,
        targeter: AdviceTargeter | None = None,
        extractor: Extractor | None = None,
        advice_source: AdviceSource | None = None,
        renderer: PromptRenderer | None = None,
        locks: SessionLockRegistry | None = None,
        advice_limit: int = ADVICE_LIMIT_PER_STATE,
    ) -> None:
        self._store = store
        evaluator = RuleEvaluator(store.concepts)
        self._controller = controller or SessionController(TransitionEngine(evaluator))
        self._targeter = targeter or AdviceTargeter(evaluator)
        self._extractor = extractor
        self._advice_source = advice_source or store.advice_source()
        self._renderer = renderer or PromptRenderer()
        self._locks = locks or SessionLockRegistry()
        self._advice_limit = advice_limit
        self._repo = SessionRepository()

    @property
    def store(self) -> FlowStore:
        return self._store

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def create_session(
        self,
        db: AsyncSession,
        *,
        client_id: str,
        session_id: str,
        flow_id: str,
        seed_answers: dict[str, str] | None = None,
    ) -> SessionInfo:
        """Create a session positioned at the flow's first unanswered state.

        The caller must ``await db.commit()`` to persist.

        Raises:
            ValueError: the flow is not found, or the session already exists.
        """
        existing = await self._repo.get_by_client_and_session(db, client_id, session_id)
        if existing is not None:
            raise ValueError(
                f"Session already exists: client_id={client_id}, session_id={session_id}"
            )

        config = self._store.get_config(flow_id)
        state = self._controller.start(
            config, session_id=session_id, seed_answers=seed_answers,
        )
        row = await self._repo.create_session(
            db, client_id=client_id, session_id=session_id, state=state_to_payload(state),
        )
        logger.info(
            "Created session %s/%s on %s at '%s'",
            client_id, session_id, config.id, state.current_state_id,
        )
        return self._to_session_info(row, config)

    async def get_session(
        self, db: AsyncSession, *, client_id: str, session_id: str
    ) -> SessionInfo | None:
        """Fetch session info by (client_id, session_id).  Returns None if not found."""
        row = await self._repo.get_by_client_and_session(db, client_id, session_id)
        if row is None:
            return None
        return self._to_session_info(row)

    async def list_sessions(
        self,
        db: AsyncSession,
        *,
        client_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SessionInfo]:
        """List sessions for a client, most recent first."""
        rows = await self._repo.list_by_client(db, client_id, limit=limit, offset=offset)
        return [self._to_session_info(r) for r in rows]

    async def get_state(
        self, db: AsyncSession, *, client_id: str, session_id: str
    ) -> SessionState:
        """Full session state.  Raises ValueError if not found."""
        row = await self._load_session(db, client_id, session_id)
        return self._to_state(row)

    # ==================================================================
    # Turn API
    # ==================================================================

    async def get_current_turn(
        self, db: AsyncSession, *, client_id: str, session_id: str
    ) -> TurnResponse:
        """What the UI should show right now.  Read-only."""
        row = await self._load_session(db, client_id, session_id)
        state = self._to_state(row)
        config = self._config_for(state)
        outcome = TurnOutcome(
            status="completed" if state.status == "completed" else "stayed",
            previous_state_id=state.current_state_id,
            new_state_id=state.current_state_id,
            progress=self._controller.progress(config, state.answers),
        )
        return await self._build_response(config, state, outcome)

    async def process_turn(
        self,
        db: AsyncSession,
        *,
        client_id: str,
        session_id: str,
        extracted: Iterable[Extraction] | None = None,
        raw_text: str | None = None,
    ) -> TurnResponse:
        """Process one user turn and return what to show next.

        ``extracted`` pairs are used as-is.  When none are given and
        ``raw_text`` is, the configured extractor is asked for them; an
        unsuccessful extraction counts as a failed attempt.

        The session row is loaded ``FOR UPDATE``, so a second turn on the
        same session waits for this transaction to end.  The caller must
        ``await db.commit()`` to persist and release it.

        Raises:
            ValueError: the session is not found or not active.
            FlowConfigurationError: the flow config is corrupt.
        """
        async with self._locks.hold((client_id, session_id)):
            row = await self._load_session(db, client_id, session_id, for_update=True)
            state = self._to_state(row)
            if state.status != "active":
                raise ValueError(f"Session is not active: status={state.status}")

            config = self._config_for(state)
            pairs = list(extracted or [])
            if not pairs and raw_text:
                pairs = await self._extract(config, state, raw_text)

            new_state, outcome = self._controller.process_turn(config, state, pairs)
            new_state.config_version = config.version

            response = await self._build_response(config, new_state, outcome)
            await self._repo.save_state(db, row, state_to_payload(new_state))

        logger.info(
            "Turn %s/%s: %s '%s' -> '%s'%s",
            client_id, session_id, outcome.status,
            outcome.previous_state_id, outcome.new_state_id,
            f" ({outcome.reason})" if outcome.reason else "",
        )
        return response

    # ==================================================================
    # Maintenance
    # ==================================================================

    async def abandon_idle_sessions(
        self,
        db: AsyncSession,
        *,
        idle_minutes: int = SESSION_IDLE_MINUTES,
        now: datetime | None = None,
        limit: int = 500,
    ) -> int:
        """Mark active sessions idle for ``idle_minutes`` as abandoned.

        Returns the number of sessions marked.  The caller must
        ``await db.commit()`` to persist.
        """
        now = now or datetime.now(timezone.utc)
        idle_after = timedelta(minutes=idle_minutes)
        rows = await self._repo.list_idle_active(db, now - idle_after, limit=limit)

        count = 0
        for row in rows:
            state = self._to_state(row)
            marked = self._controller.mark_abandoned(state, now=now, idle_after=idle_after)
            if marked.status == "abandoned":
                await self._repo.abandon_session(db, row)
                count += 1
        if count:
            logger.info("Marked %d idle session(s) as abandoned", count)
        return count

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _load_session(
        self,
        db: AsyncSession,
        client_id: str,
        session_id: str,
        *,
        for_update: bool = False,
    ) -> ConversationSession:
        """Load a session row or raise ValueError if not found."""
        row = await self._repo.get_by_client_and_session(
            db, client_id, session_id, for_update=for_update,
        )
        if row is None:
            raise ValueError(
                f"Session not found: client_id={client_id}, session_id={session_id}"
            )
        return row

    def _to_state(self, row: ConversationSession) -> SessionState:
        return SessionState.model_validate(self._repo.state_payload(row))

    def _config_for(self, state: SessionState) -> StateMachineConfig:
        """Current config for the session's flow.

        Sessions follow the flow's current version; a version change is
        logged because in-flight sessions may sit on a state that moved.
        """
        config = self._store.get_config(state.flow_id)
        if config.version != state.config_version:
            logger.warning(
                "Session %s started on %s v%d; continuing on v%d",
                state.session_id, state.flow_id, state.config_version, config.version,
            )
        return config

    async def _extract(
        self, config: StateMachineConfig, state: SessionState, raw_text: str
    ) -> list[Extraction]:
        if self._extractor is None:
            logger.warning("Raw-text turn for %s but no extractor configured", state.session_id)
            return []
        current = config.get_state(state.current_state_id)
        collects = current.collects if current is not None else []
        result = await self._extractor.extract(raw_text, collects, config.collectable_fields())
        if not result.success:
            logger.debug("Extraction found nothing for %s", state.session_id)
            return []
        return list(result.pairs)

    async def _build_response(
        self,
        config: StateMachineConfig,
        state: SessionState,
        outcome: TurnOutcome,
    ) -> TurnResponse:
        current = config.get_state(state.current_state_id)
        prompt = self._renderer.render_prompt(
            self._controller.current_prompt(config, state), state.answers,
        )
        advice = await self._targeter.select_from_source(
            self._advice_source,
            state.answers,
            self._advice_limit,
            flow_id=state.flow_id,
            state_id=current.id,
            phase_id=current.linked_phase_id,
        )
        return TurnResponse(
            status=outcome.status,
            new_state_id=current.id,
            prompt_to_show=prompt,
            input_kind=current.input_kind,
            choices=list(current.choices),
            attached_advice=advice,
            progress=outcome.progress,
            reason=outcome.reason,
            fields_collected=outcome.fields_collected,
            skipped_states=outcome.skipped_states,
        )

    def _to_session_info(
        self, row: ConversationSession, config: StateMachineConfig | None = None
    ) -> SessionInfo:
        """Convert an ORM row to a public SessionInfo."""
        if config is None:
            definition = self._store.flows.get(row.flow_id)
            if definition is not None:
                config = self._store.get_config(row.flow_id)
        progress = self._controller.progress(config, row.answers or {}) if config else 0
        return SessionInfo(
            client_id=row.client_id,
            session_id=row.session_id,
            flow_id=row.flow_id,
            status=row.status.value if isinstance(row.status, SessionStatus) else str(row.status),
            current_state_id=row.current_state_id,
            progress=progress,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
