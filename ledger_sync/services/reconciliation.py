"""Reconciliation View — one ordered transaction history from server and local state.

Invariants:
    - Server copy wins for every id the server returned
    - Local-only records (pending, or never acknowledged by the server) are added
    - Newest first by created_at
    - Any remote failure (offline, timeout, 5xx, a rejected page request) falls back to the full local history
      instead of failing the call
    - Read-only: never writes the local store (the coordinator converges it)

Design Decisions:
    - Pages through GET /transactions until a short page: the merge needs the
      whole server history, not just the first page
"""

import logging
from dataclasses import dataclass

from ledger_sync.core.domain_types import OwnerId
from ledger_sync.core.errors import LedgerSyncError
from ledger_sync.core.reconcile_history import merge_history, order_newest_first
from ledger_sync.core.repository_protocols import (
    ConnectivityProbe, TransactionStore, TransferGateway,
)
from ledger_sync.core.transaction_intent import TransactionIntent

logger = logging.getLogger(__name__)


@dataclass
class ReconciledHistory:
    """Merged history plus the raw server list (None when the server was unreachable)."""
    items: list[TransactionIntent]
    remote: list[TransactionIntent] | None


class ReconciliationView:
    def __init__(
        self,
        store: TransactionStore,
        gateway: TransferGateway,
        connectivity: ConnectivityProbe,
        page_size: int = 100,
    ):
        self.store = store
        self.gateway = gateway
        self.connectivity = connectivity
        self.page_size = page_size

    async def history(self, owner_id: OwnerId) -> ReconciledHistory:
        remote = await self._fetch_remote()
        if remote is None:
            local = await self.store.list_all(owner_id)
            return ReconciledHistory(items=order_newest_first(local), remote=None)
        local_only = await self.store.list_local_only(owner_id)
        return ReconciledHistory(items=merge_history(remote, local_only), remote=remote)

    async def _fetch_remote(self) -> list[TransactionIntent] | None:
        if not await self.connectivity.is_online():
            logger.info("Offline: serving local history")
            return None
        remote: list[TransactionIntent] = []
        offset = 0
        try:
            while True:
                page = await self.gateway.list_transactions(self.page_size, offset)
                remote.extend(page)
                if len(page) < self.page_size:
                    return remote
                offset += self.page_size
        except LedgerSyncError as e:
            logger.warning(
                f"Remote history unavailable, serving local history: {e.message}",
                extra={"error_code": e.code, "reason": getattr(e, "reason", None)},
            )
            return None
