"""Transfer Routes — the wire surface of the Transfer Executor.

Invariants:
    - POST /transfer                  -> 201 pending record (200 when the id is replayed)
    - PUT  /transaction/{id}/sync     -> 200 record with status success | failed
    - POST /transaction/{id}/cancel   -> 200 record with status cancelled
    - GET  /transactions?limit&offset -> 200 list, newest first
    - Every route requires a bearer token; records are scoped to its owner
    - Business outcomes (insufficient balance, unknown recipient at execution) are 200s
      carrying a failed record, not error responses

Design Decisions:
    - Paths kept identical to the mobile client's contract (no /api/v1 prefix)
    - Errors raised as LedgerSyncError and rendered by api/error_handlers.py
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from ledger_sync.config import get_settings
from ledger_sync.core.domain_types import OwnerId, TransactionId
from ledger_sync.api.dependencies import get_current_owner, get_executor
from ledger_sync.schemas.transaction import TransactionResponse, TransferCreate
from ledger_sync.services.transfer_executor import TransferExecutor

logger = logging.getLogger(__name__)
router = APIRouter(tags=["transfers"])

_settings = get_settings()


@router.post(
    "/transfer", response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_transfer(
    body: TransferCreate,
    response: Response,
    owner_id: OwnerId = Depends(get_current_owner),
    executor: TransferExecutor = Depends(get_executor),
):
    """Create a pending transfer intent. No balance moves."""
    intent, created = await executor.create_pending(
        owner_id,
        body.recipient_identifier,
        body.amount,
        body.note,
        transaction_id=TransactionId(body.id) if body.id else None,
        created_at=body.created_at,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return TransactionResponse.from_intent(intent)


@router.put(
    "/transaction/{transaction_id}/sync", response_model=TransactionResponse,
)
async def sync_transaction(
    transaction_id: UUID,
    owner_id: OwnerId = Depends(get_current_owner),
    executor: TransferExecutor = Depends(get_executor),
):
    """Execute the transfer atomically, or record why it failed."""
    intent = await executor.execute(owner_id, TransactionId(transaction_id))
    return TransactionResponse.from_intent(intent)


@router.post(
    "/transaction/{transaction_id}/cancel", response_model=TransactionResponse,
)
async def cancel_transaction(
    transaction_id: UUID,
    owner_id: OwnerId = Depends(get_current_owner),
    executor: TransferExecutor = Depends(get_executor),
):
    """Cancel a pending transfer."""
    intent = await executor.cancel(owner_id, TransactionId(transaction_id))
    return TransactionResponse.from_intent(intent)


@router.get("/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    limit: int = Query(_settings.history_default_limit, ge=1, le=_settings.history_max_limit),
    offset: int = Query(0, ge=0),
    owner_id: OwnerId = Depends(get_current_owner),
    executor: TransferExecutor = Depends(get_executor),
):
    """Transaction history of the authenticated owner, newest first."""
    intents = await executor.list(owner_id, limit=limit, offset=offset)
    return [TransactionResponse.from_intent(i) for i in intents]
