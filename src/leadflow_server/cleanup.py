"""Idle-session CLI — ``leadflow-abandon``.

Connects to the database and marks active sessions that have been idle
longer than the inactivity window as abandoned.  Intended for cron jobs.

Examples::

    # Use SESSION_IDLE_MINUTES (default 60)
    leadflow-abandon

    # Sessions idle for more than a day
    leadflow-abandon --idle-minutes 1440
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from leadflow_engine.constants import SESSION_IDLE_MINUTES

logger = logging.getLogger(__name__)


async def run_abandon(
    *,
    idle_minutes: int = SESSION_IDLE_MINUTES,
    flow_dir: str | None = None,
    limit: int = 500,
) -> int:
    """Mark idle sessions abandoned and return how many were affected.

    Creates its own database session and commits.  Safe to call from a CLI
    entry point or a scheduled task.
    """
    # Lazy imports to avoid loading DB machinery at module import time
    from leadflow_db.engine import dispose_engine, session_scope
    from leadflow_engine.service import ConversationService
    from leadflow_engine.store import FlowStore

    store = FlowStore(flow_dir=flow_dir)
    store.load()
    service = ConversationService(store)
    try:
        async with session_scope() as db:
            affected = await service.abandon_idle_sessions(
                db, idle_minutes=idle_minutes, limit=limit,
            )

        logger.info(
            "Abandon sweep complete: affected_rows=%d, idle_minutes=%d",
            affected, idle_minutes,
        )
        return affected
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``leadflow-abandon``."""
    parser = argparse.ArgumentParser(
        prog="leadflow-abandon",
        description="Mark idle conversation sessions as abandoned.",
    )
    parser.add_argument(
        "--idle-minutes",
        type=int,
        default=SESSION_IDLE_MINUTES,
        help="Inactivity window in minutes (default: $SESSION_IDLE_MINUTES, or 60)",
    )
    parser.add_argument(
        "--flow-dir",
        default=None,
        help="Flow directory (default: flows/ at the repo root)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=500,
        help="Maximum sessions to mark in one run (default: 500)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    affected = asyncio.run(
        run_abandon(idle_minutes=args.idle_minutes, flow_dir=args.flow_dir, limit=args.limit)
    )

    print(f"Abandoned sessions: {affected}")
    sys.exit(0)
