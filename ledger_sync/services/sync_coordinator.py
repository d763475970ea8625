"""Sync Coordinator — drives locally created intents through the remote Transfer Executor.

Invariants:
    - create() validates before writing, writes before any network call, and never
      raises once the intent is written: network failure or a rejected first sync
      leaves it pending
    - sync/cancel on the same id are serialized in-process by a per-id lock and across
      processes by the store's compare-and-set transition
    - A transport failure or timeout never produces `failed`: the server may have
      applied the transfer, so the record stays pending and sync may be retried forever
    - Definitive remote answers (success, failed with a reason) are written locally
    - cancel() takes effect locally without the network; mirroring it to the server
      is best-effort and never surfaces as an error
    - The coordinator is the only writer of local status

Design Decisions:
    - The client id is sent on create, so a retried sync re-posts the same id and the
      server replays its stored record instead of creating a second intent
    - A "not eligible" answer that carries the server's terminal record is adopted
      locally: it means an earlier attempt succeeded and only its response was lost
    - Cancelling a caller's await (task.cancel) only stops waiting; whatever the server
      already started runs to completion and is picked up by the next sync or history
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal

from ledger_sync.core.domain_types import (
    ELIGIBLE_STATUSES, FailureReason, Operation, OwnerId, TransactionId, TransactionStatus,
)
from ledger_sync.core.enforce_transitions import check_transition
from ledger_sync.core.errors import (
    AuthenticationError,
    LedgerSyncError,
    RecipientNotFoundError,
    RemoteUnavailableError,
    ResourceNotFoundError,
    TransferValidationError,
    TransitionNotAllowedError,
)
from ledger_sync.core.reconcile_history import outcomes_to_adopt
from ledger_sync.core.repository_protocols import (
    ConnectivityProbe, TransactionStore, TransferGateway,
)
from ledger_sync.core.transaction_intent import TransactionIntent, new_intent
from ledger_sync.core.validate_transfer import validate_transfer_input
from ledger_sync.schemas.transaction import TransactionResponse
from ledger_sync.services.reconciliation import ReconciliationView

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _KeyedLocks:
    """One asyncio.Lock per key, dropped when nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[TransactionId, asyncio.Lock] = {}
        self._users: dict[TransactionId, int] = {}

    @asynccontextmanager
    async def hold(self, key: TransactionId) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class SyncCoordinator:
    """Per-owner orchestration of create / sync / cancel / history."""

    def __init__(
        self,
        owner_id: OwnerId,
        store: TransactionStore,
        gateway: TransferGateway,
        connectivity: ConnectivityProbe,
        sync_timeout_seconds: float = 15.0,
        history_page_size: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.owner_id = owner_id
        self.store = store
        self.gateway = gateway
        self.connectivity = connectivity
        self.sync_timeout_seconds = sync_timeout_seconds
        self.view = ReconciliationView(store, gateway, connectivity, history_page_size)
        self._clock = clock
        self._locks = _KeyedLocks()

    # ─── create ──────────────────────────────────────────────────

    async def create(
        self,
        recipient_identifier: str,
        amount: Decimal | int | float | str,
        note: str | None = "",
    ) -> TransactionIntent:
        """Record a transfer intent locally, then attempt one sync pass."""
        recipient_identifier, amount, note = validate_transfer_input(
            recipient_identifier, amount, note,
        )
        intent = new_intent(
            self.owner_id, recipient_identifier, amount, note, now=self._clock(),
        )
        await self.store.insert(intent)

        try:
            return await self.sync(intent.id)
        except (RemoteUnavailableError, AuthenticationError) as e:
            logger.info(
                f"Transfer saved as pending: {e.message}",
                extra={"transaction_id": intent.id, "error_code": e.code},
            )
            return await self.store.get(intent.id)
        except LedgerSyncError as e:
            # The intent is already recorded; a rejected first pass leaves it pending
            logger.warning(
                f"First sync rejected, transfer kept as pending: {e.message}",
                extra={"transaction_id": intent.id, "error_code": e.code},
            )
            return await self.store.get(intent.id)

    # ─── sync ────────────────────────────────────────────────────

    async def sync(self, transaction_id: TransactionId) -> TransactionIntent:
        """Submit a pending/failed intent to the Transfer Executor.

        Raises ResourceNotFoundError, TransitionNotAllowedError, or
        RemoteUnavailableError (recoverable; the record is left as it was).
        """
        async with self._locks.hold(transaction_id):
            intent = await self.store.get(transaction_id)
            check_transition(intent, Operation.SYNC)

            if not await self.connectivity.is_online():
                raise RemoteUnavailableError("No connection to transfer service", "offline")

            try:
                remote = await asyncio.wait_for(
                    self._push(intent), timeout=self.sync_timeout_seconds,
                )
            except asyncio.TimeoutError:
                self._log_transport_failure(intent, "timeout")
                raise RemoteUnavailableError(
                    f"No answer within {self.sync_timeout_seconds}s", "timeout",
                )
            except RemoteUnavailableError as e:
                self._log_transport_failure(intent, e.reason)
                raise
            except RecipientNotFoundError:
                return await self._fail_locally(intent, FailureReason.RECIPIENT_NOT_FOUND.value)
            except TransferValidationError as e:
                # the server will never accept these terms; record why
                return await self._fail_locally(intent, e.message)
            except TransitionNotAllowedError as e:
                current = self._remote_snapshot(e)
                if current is None or not current.is_terminal:
                    raise
                logger.info(
                    "Adopting server outcome after rejected sync",
                    extra={"transaction_id": intent.id, "status": current.status.value},
                )
                return await self._adopt(current)
            return await self._adopt(remote)

    async def _push(self, intent: TransactionIntent) -> TransactionIntent:
        """Make sure the server holds the intent, then ask it to execute."""
        remote = await self.gateway.create_pending(intent)
        await self.store.mark_acknowledged(intent.id)
        if remote.can_sync:
            remote = await self.gateway.execute(intent.id)
        return remote

    async def _adopt(self, remote: TransactionIntent) -> TransactionIntent:
        if remote.status == TransactionStatus.PENDING:
            return await self.store.get(remote.id)
        return await self.store.transition(
            remote.id,
            allowed=ELIGIBLE_STATUSES[Operation.SYNC],
            operation=Operation.SYNC.value,
            status=remote.status,
            executed_at=remote.executed_at,
            failure_reason=remote.failure_reason,
            acknowledged=True,
        )

    async def _fail_locally(self, intent: TransactionIntent, reason: str) -> TransactionIntent:
        logger.info(
            f"Transfer rejected by server: {reason}",
            extra={"transaction_id": intent.id, "reason": reason},
        )
        return await self.store.transition(
            intent.id,
            allowed=ELIGIBLE_STATUSES[Operation.SYNC],
            operation=Operation.SYNC.value,
            status=TransactionStatus.FAILED,
            failure_reason=reason,
        )

    def _remote_snapshot(self, error: TransitionNotAllowedError) -> TransactionIntent | None:
        if not error.transaction:
            return None
        return TransactionResponse.model_validate(error.transaction).to_intent(self.owner_id)

    def _log_transport_failure(self, intent: TransactionIntent, reason: str) -> None:
        logger.warning(
            "Sync attempt got no answer; transaction stays pending",
            extra={"transaction_id": intent.id, "reason": reason},
        )

    # ─── cancel ──────────────────────────────────────────────────

    async def cancel(self, transaction_id: TransactionId) -> TransactionIntent:
        """pending -> cancelled locally, then best-effort mirror to the server."""
        async with self._locks.hold(transaction_id):
            cancelled = await self.store.transition(
                transaction_id,
                allowed=ELIGIBLE_STATUSES[Operation.CANCEL],
                operation=Operation.CANCEL.value,
                status=TransactionStatus.CANCELLED,
            )
            await self._propagate_cancel(transaction_id)
        return cancelled

    async def _propagate_cancel(self, transaction_id: TransactionId) -> None:
        try:
            if not await self.connectivity.is_online():
                logger.info(
                    "Offline: cancellation kept local",
                    extra={"transaction_id": transaction_id},
                )
                return
            await asyncio.wait_for(
                self.gateway.cancel(transaction_id), timeout=self.sync_timeout_seconds,
            )
            await self.store.mark_acknowledged(transaction_id)
        except ResourceNotFoundError:
            # the server never saw this intent; nothing to mirror
            return
        except TransitionNotAllowedError as e:
            logger.warning(
                f"Server refused cancellation ({e.current_status}); server copy prevails in history",
                extra={"transaction_id": transaction_id, "status": e.current_status},
            )
        except asyncio.TimeoutError:
            logger.info(
                "Cancellation not mirrored: timeout",
                extra={"transaction_id": transaction_id, "reason": "timeout"},
            )
        except LedgerSyncError as e:
            logger.info(
                f"Cancellation not mirrored: {e.message}",
                extra={"transaction_id": transaction_id, "error_code": e.code},
            )

    # ─── history ─────────────────────────────────────────────────

    async def history(self, owner_id: OwnerId | None = None) -> list[TransactionIntent]:
        """Reconciled history, with terminal server outcomes written back locally."""
        owner_id = owner_id or self.owner_id
        if owner_id != self.owner_id:
            raise TransferValidationError(
                "History is only available for the signed-in account", "owner_id",
            )
        result = await self.view.history(owner_id)
        if result.remote is not None:
            await self._converge(result.remote)
        return result.items

    async def _converge(self, remote: list[TransactionIntent]) -> None:
        local = await self.store.list_all(self.owner_id)
        for outcome in outcomes_to_adopt(remote, local):
            async with self._locks.hold(outcome.id):
                try:
                    await self._adopt(outcome)
                except TransitionNotAllowedError:
                    # a concurrent sync or cancel got there first
                    continue

    # ─── wipe ────────────────────────────────────────────────────

    async def clear_local_data(self) -> int:
        """Logout-style wipe of every local record of this owner."""
        return await self.store.wipe(self.owner_id)
