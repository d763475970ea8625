"""Transfer API Client — httpx wrapper that talks to the remote Transfer Executor.

Invariants:
    - Every request carries the bearer token and a bounded timeout
    - No response (timeout, refused connection, protocol error) and 5xx answers map to
      RemoteUnavailableError — never to a terminal outcome
    - 4xx error envelopes map back to the same LedgerSyncError types the server raised
    - No automatic retry: the caller decides when to sync again

Design Decisions:
    - Wrapper over raw httpx.AsyncClient: isolates wire mapping from the coordinator
      (ADR: single responsibility)
    - Transport is injectable: tests pass httpx.MockTransport or ASGITransport
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from ledger_sync.core.domain_types import OwnerId, TransactionId
from ledger_sync.core.errors import (
    AuthenticationError,
    ErrorContext,
    IdempotencyConflictError,
    LedgerSyncError,
    RecipientNotFoundError,
    RemoteUnavailableError,
    ResourceNotFoundError,
    TransferValidationError,
    TransitionNotAllowedError,
)
from ledger_sync.core.transaction_intent import TransactionIntent
from ledger_sync.schemas.transaction import TransactionResponse

logger = logging.getLogger(__name__)


class TransferApiClient:
    """Client side of the transfer wire protocol."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        owner_id: OwnerId,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner_id = owner_id
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
        )

    async def create_pending(self, intent: TransactionIntent) -> TransactionIntent:
        """POST /transfer with the client-generated id (idempotent on the server)."""
        body = {
            "id": str(intent.id),
            "recipientIdentifier": intent.recipient_identifier,
            "amount": float(intent.amount),
            "note": intent.note,
            "createdAt": intent.created_at.isoformat(),
        }
        data = await self._request(
            "POST", "/transfer", json=body, transaction_id=intent.id,
            recipient_identifier=intent.recipient_identifier,
        )
        return self._to_intent(data)

    async def execute(self, transaction_id: TransactionId) -> TransactionIntent:
        data = await self._request(
            "PUT", f"/transaction/{transaction_id}/sync", json={},
            transaction_id=transaction_id,
        )
        return self._to_intent(data)

    async def cancel(self, transaction_id: TransactionId) -> TransactionIntent:
        data = await self._request(
            "POST", f"/transaction/{transaction_id}/cancel", json={},
            transaction_id=transaction_id,
        )
        return self._to_intent(data)

    async def list_transactions(
        self, limit: int, offset: int,
    ) -> list[TransactionIntent]:
        data = await self._request(
            "GET", "/transactions", params={"limit": limit, "offset": offset},
        )
        if not isinstance(data, list):
            raise RemoteUnavailableError("Malformed history response", "protocol_error")
        return [self._to_intent(item) for item in data]

    async def close(self) -> None:
        await self.client.aclose()

    # ─── Internals ───────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        transaction_id: TransactionId | None = None,
        recipient_identifier: str | None = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(
                f"Transfer service timed out on {method} {path}",
                extra={"transaction_id": transaction_id, "reason": "timeout"},
            )
            raise RemoteUnavailableError(str(e) or "request timed out", "timeout")
        except httpx.TransportError as e:
            logger.warning(
                f"Transfer service unreachable on {method} {path}: {e}",
                extra={"transaction_id": transaction_id, "reason": "connection_error"},
            )
            raise RemoteUnavailableError(str(e) or "connection failed", "connection_error")

        if response.status_code >= 500:
            raise RemoteUnavailableError(
                f"HTTP {response.status_code} from {path}", "server_error",
            )
        try:
            payload = response.json()
        except ValueError:
            raise RemoteUnavailableError(
                f"Non-JSON response from {path}", "protocol_error",
            )
        if response.is_success:
            return payload
        raise _error_from_response(
            response.status_code, payload, transaction_id, recipient_identifier,
        )

    def _to_intent(self, data: Any) -> TransactionIntent:
        try:
            return TransactionResponse.model_validate(data).to_intent(self.owner_id)
        except ValidationError as e:
            raise RemoteUnavailableError(f"Malformed transaction: {e}", "protocol_error")


def _error_from_response(
    status_code: int,
    payload: Any,
    transaction_id: TransactionId | None,
    recipient_identifier: str | None = None,
) -> LedgerSyncError:
    """Rebuild the server's LedgerSyncError from its REST error envelope."""
    error = payload.get("error", {}) if isinstance(payload, dict) else {}
    code = error.get("code", "")
    message = error.get("message", f"HTTP {status_code}")
    remote_ctx = error.get("context") or {}
    tx_id = remote_ctx.get("transaction_id") or (str(transaction_id) if transaction_id else "")
    ctx = ErrorContext(
        transaction_id=tx_id or None,
        operation=remote_ctx.get("operation"),
        transaction=remote_ctx.get("transaction"),
    )

    if status_code == 401:
        return AuthenticationError(message, ctx)
    if code == "TRANSITION_NOT_ALLOWED":
        snapshot = ctx.transaction or {}
        return TransitionNotAllowedError(
            tx_id,
            snapshot.get("status", "ineligible"),
            ctx.operation or "sync",
            context=ctx,
        )
    if code == "RECIPIENT_NOT_FOUND":
        return RecipientNotFoundError(recipient_identifier or "unknown", ctx)
    if status_code == 404:
        return ResourceNotFoundError(
            remote_ctx.get("resource_type") or "Transaction",
            remote_ctx.get("resource_id") or tx_id,
            ctx,
        )
    if code == "IDEMPOTENCY_CONFLICT":
        return IdempotencyConflictError(tx_id, ctx)
    if status_code == 400 or status_code == 422:
        return TransferValidationError(message, _first_field(error), ctx)
    return RemoteUnavailableError(f"Unexpected HTTP {status_code}: {message}", "protocol_error")


def _first_field(error: dict) -> str:
    details = error.get("details") or []
    if details and isinstance(details[0], dict):
        return details[0].get("field", "")
    return ""
