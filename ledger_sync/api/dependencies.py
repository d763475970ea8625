"""Request Dependencies — database session and authenticated owner for route handlers.

Invariants:
    - Both dependencies read their collaborators from request.app.state
      (set by the lifespan) — no module-level singletons
    - Missing/invalid bearer token -> AuthenticationError (401)

Design Decisions:
    - Plain functions usable with Depends() and overridable in tests via
      app.dependency_overrides
"""

from typing import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_sync.core.domain_types import OwnerId
from ledger_sync.services.transfer_executor import TransferExecutor


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    db_manager = getattr(request.app.state, "db_manager", None)
    if db_manager is None:
        raise RuntimeError("Database not initialized")
    async with db_manager.session() as session:
        yield session


def get_current_owner(
    request: Request, authorization: str | None = Header(None),
) -> OwnerId:
    """Resolve the bearer token to the owner account it authenticates."""
    verifier = getattr(request.app.state, "token_verifier", None)
    if verifier is None:
        raise RuntimeError("Token verifier not initialized")
    return verifier.verify(authorization)


def get_executor(db: AsyncSession = Depends(get_db)) -> TransferExecutor:
    return TransferExecutor(db)
