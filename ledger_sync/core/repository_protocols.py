"""Boundary Protocols — contracts between the sync core and its collaborators.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - The coordinator sees the store, the remote service, and connectivity only
      through these Protocols
    - Implementations provided by the client entry point via constructor injection

Design Decisions:
    - Protocol over ABC: structural subtyping, test fakes need no inheritance
    - Async in Protocol: boundary methods are async because implementations do IO
"""

from collections.abc import Collection
from datetime import datetime
from typing import Protocol

from ledger_sync.core.domain_types import OwnerId, TransactionId, TransactionStatus
from ledger_sync.core.transaction_intent import TransactionIntent


class TransactionStore(Protocol):
    """Durable client-side table of intents — implemented by infrastructure/local_store."""
    async def insert(self, intent: TransactionIntent) -> None: ...
    async def get(self, transaction_id: TransactionId) -> TransactionIntent: ...
    async def list_all(self, owner_id: OwnerId) -> list[TransactionIntent]: ...
    async def list_local_only(self, owner_id: OwnerId) -> list[TransactionIntent]: ...
    async def transition(
        self,
        transaction_id: TransactionId,
        *,
        allowed: Collection[TransactionStatus],
        operation: str,
        status: TransactionStatus,
        executed_at: datetime | None = None,
        failure_reason: str | None = None,
        acknowledged: bool | None = None,
    ) -> TransactionIntent: ...
    async def mark_acknowledged(self, transaction_id: TransactionId) -> None: ...
    async def wipe(self, owner_id: OwnerId) -> int: ...


class TransferGateway(Protocol):
    """Remote Transfer Executor as seen by the client — implemented by TransferApiClient."""
    async def create_pending(self, intent: TransactionIntent) -> TransactionIntent: ...
    async def execute(self, transaction_id: TransactionId) -> TransactionIntent: ...
    async def cancel(self, transaction_id: TransactionId) -> TransactionIntent: ...
    async def list_transactions(
        self, limit: int, offset: int,
    ) -> list[TransactionIntent]: ...


class ConnectivityProbe(Protocol):
    """Answers whether the transfer service is reachable right now."""
    async def is_online(self) -> bool: ...
