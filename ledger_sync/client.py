"""Client Entry Point — wires the local store, HTTP gateway and probe into a SyncCoordinator.

Invariants:
    - Every collaborator is built here and passed in; nothing is looked up globally
    - The local table exists before the coordinator is handed out
    - HTTP clients closed and the local engine disposed on exit

Design Decisions:
    - Async context manager over a long-lived module object: the caller (app shell,
      CLI, test) owns the lifetime (ADR: explicit dependency lifetime)
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from sqlalchemy.ext.asyncio import create_async_engine

from ledger_sync.config import Settings
from ledger_sync.core.domain_types import OwnerId
from ledger_sync.infrastructure.connectivity import HttpConnectivityProbe
from ledger_sync.infrastructure.database import DatabaseSessionManager
from ledger_sync.infrastructure.local_store import LocalTransactionStore
from ledger_sync.infrastructure.transfer_client import TransferApiClient
from ledger_sync.services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def open_sync_coordinator(
    settings: Settings,
    owner_id: OwnerId,
    access_token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[SyncCoordinator]:
    """Build a ready-to-use coordinator for one signed-in owner.

    `transport` replaces the network (tests run the server app in-process).
    """
    local_db = DatabaseSessionManager(
        engine=create_async_engine(settings.local_database_url, echo=False),
    )
    store = LocalTransactionStore(local_db)
    await store.create_schema()

    gateway = TransferApiClient(
        settings.remote_base_url,
        access_token,
        owner_id,
        timeout_seconds=settings.remote_timeout_seconds,
        transport=transport,
    )
    probe = HttpConnectivityProbe(
        settings.remote_base_url,
        timeout_seconds=settings.connectivity_timeout_seconds,
        transport=transport,
    )
    try:
        yield SyncCoordinator(
            owner_id,
            store,
            gateway,
            probe,
            sync_timeout_seconds=settings.sync_timeout_seconds,
            history_page_size=settings.history_page_size,
        )
    finally:
        await gateway.close()
        await probe.close()
        await local_db.dispose()
        logger.info("Sync coordinator closed", extra={"owner_id": owner_id})
