"""Ledger Sync API — FastAPI application entry point (server side).

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map LedgerSyncError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - The lifespan owns the database manager and token verifier and publishes them on
      app.state; nothing is held in module globals

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Table creation behind a flag: schema migrations are run by deployment tooling
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ledger_sync.api.error_handlers import register_error_handlers
from ledger_sync.api.routes import health, transfers
from ledger_sync.config import get_settings
from ledger_sync.infrastructure.auth import StaticTokenVerifier
from ledger_sync.infrastructure.database import DatabaseSessionManager
from ledger_sync.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db_manager = DatabaseSessionManager(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    if settings.database_create_tables:
        await db_manager.create_tables()
    app.state.db_manager = db_manager
    app.state.token_verifier = StaticTokenVerifier(settings.api_tokens)
    logger.info("Ledger Sync API started")
    yield
    logger.info("Ledger Sync API shutting down")
    await db_manager.dispose()


app = FastAPI(
    title="Ledger Sync API", version="1.0.0", lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes — explicit registration
app.include_router(health.router)
app.include_router(transfers.router)

register_error_handlers(app)
