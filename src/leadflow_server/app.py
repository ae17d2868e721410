"""Application factory and CLI entry point.

``create_app()`` wires the conversation engine into FastAPI:

  - the lifespan handler loads ``flows/`` once and builds the
    ``ConversationService``; a broken flow document stops startup
  - CORS for the chat widget's origins
  - error handlers from :mod:`leadflow_server.errors`
  - API routes under ``/api/v1`` and a ``/health`` readiness check

``cli()`` is the ``leadflow-server`` console script.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from leadflow_db.engine import dispose_engine, get_engine
from leadflow_engine.service import ConversationService
from leadflow_engine.store import FlowStore

from leadflow_server.config import ServerSettings, load_settings
from leadflow_server.errors import install_error_handlers
from leadflow_server.routes import register_routes

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: ServerSettings = app.state.settings

    store = FlowStore(flow_dir=settings.flow_dir)
    store.load()
    for flow in store.list_flows():
        logger.info("Serving flow '%s' v%d", flow.flow_id, flow.version)

    app.state.store = store
    app.state.service = ConversationService(store, advice_limit=settings.advice_limit)

    yield

    await dispose_engine()
    logger.info("Database engine disposed")


async def health(request: Request) -> JSONResponse:
    """Readiness check: flows loaded and the database answering.

    Returns 503 while either is missing so load balancers hold traffic.
    """
    store: FlowStore | None = getattr(request.app.state, "store", None)
    body = {"status": "ok", "flows": len(store.flows) if store else 0, "database": "ok"}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Health check: database unavailable: %s", exc)
        body["database"] = "unavailable"

    if body["database"] != "ok" or not body["flows"]:
        body["status"] = "error"
        return JSONResponse(status_code=503, content=body)
    return JSONResponse(content=body)


def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build the FastAPI application for ``settings`` (env-derived by default)."""
    settings = settings or load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO), format=LOG_FORMAT)

    app = FastAPI(
        title="Leadflow API Server",
        description="Turn API for lead-generation chat flows",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    install_error_handlers(app)
    app.add_api_route("/health", health, methods=["GET"], include_in_schema=False)
    register_routes(app)
    return app


# For ``uvicorn leadflow_server.app:app``
app = create_app()


def cli() -> None:
    """Console-script entry point: ``leadflow-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "leadflow_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
