"""Transfer Executor — the single place balances move.

Invariants:
    - execute() applies at most one balance mutation per transaction id: the status
      change to success is a guarded UPDATE inside the same commit as the debit and
      credit, so a second run finds the record already terminal
    - Debit, credit, status=success and executed_at commit together or not at all
    - Unknown recipient / insufficient balance are persisted as `failed` with a reason
      and returned normally — they are outcomes, not errors
    - Only pending (create/cancel) or pending|failed (execute) records are touched
    - Every lookup is scoped to the authenticated owner

Design Decisions:
    - Row locks (SELECT ... FOR UPDATE) on the record, then on both account rows in
      primary-key order: concurrent transfers touching the same accounts serialize
      without deadlocking; disjoint transfers run in parallel (ADR: PostgreSQL row locks)
    - Guarded UPDATEs (status IN eligible, balance >= amount) as a second line: SQLite
      ignores FOR UPDATE, and the guards keep the invariants without it
    - The client-generated id is the canonical idempotency key; re-posting the same id
      with the same terms returns the stored record
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_sync.core.domain_types import (
    FailureReason, Operation, OwnerId, TransactionId, TransactionStatus,
)
from ledger_sync.core.enforce_transitions import check_transition, eligible_statuses
from ledger_sync.core.errors import (
    ErrorContext,
    IdempotencyConflictError,
    RecipientNotFoundError,
    ResourceNotFoundError,
    TransferValidationError,
    TransitionNotAllowedError,
)
from ledger_sync.core.transaction_intent import TransactionIntent, new_intent
from ledger_sync.core.validate_transfer import validate_transfer_input
from ledger_sync.models.account import Account
from ledger_sync.models.transaction import TransactionRecord
from ledger_sync.schemas.transaction import transaction_snapshot

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _AtomicUnitAborted(Exception):
    """Raised inside the atomic unit to roll it back before re-evaluating."""


class TransferExecutor:
    """Server-side transfer operations over one request-scoped session."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self._clock = clock

    # ─── createPending ───────────────────────────────────────────

    async def create_pending(
        self,
        owner_id: OwnerId,
        recipient_identifier: str,
        amount: Decimal,
        note: str = "",
        transaction_id: TransactionId | None = None,
        created_at: datetime | None = None,
    ) -> tuple[TransactionIntent, bool]:
        """Persist a pending record. Returns (record, created).

        created is False when `transaction_id` already names an identical
        record of this owner (a retried create).
        """
        recipient_identifier, amount, note = validate_transfer_input(
            recipient_identifier, amount, note,
        )
        intent = new_intent(
            owner_id, recipient_identifier, amount, note,
            now=created_at or self._clock(), transaction_id=transaction_id,
        )

        if transaction_id is not None:
            existing = await self.db.get(TransactionRecord, transaction_id)
            if existing is not None:
                return self._replay(existing.to_intent(), intent), False

        sender = await self._account_by_owner(owner_id)
        if sender is None:
            raise ResourceNotFoundError("Account", str(owner_id))
        recipient = await self._account_by_identifier(recipient_identifier)
        if recipient is None:
            raise RecipientNotFoundError(recipient_identifier)
        if recipient.id == sender.id:
            raise TransferValidationError(
                FailureReason.SELF_TRANSFER.value.capitalize(), "recipient_identifier",
            )

        now = self._clock()
        self.db.add(TransactionRecord(
            id=intent.id,
            owner_id=owner_id,
            recipient_identifier=intent.recipient_identifier,
            amount=intent.amount,
            note=intent.note,
            status=TransactionStatus.PENDING.value,
            failure_reason=None,
            executed_at=None,
            created_at=intent.created_at,
            updated_at=now,
        ))
        try:
            await self.db.commit()
        except IntegrityError:
            # same id inserted concurrently: treat as a retried create
            await self.db.rollback()
            existing = await self.db.get(TransactionRecord, intent.id)
            if existing is None:
                raise
            return self._replay(existing.to_intent(), intent), False

        logger.info(
            "Pending transaction created",
            extra={"transaction_id": intent.id, "owner_id": owner_id},
        )
        return intent, True

    def _replay(
        self, stored: TransactionIntent, requested: TransactionIntent,
    ) -> TransactionIntent:
        if not stored.same_terms_as(requested):
            raise IdempotencyConflictError(str(requested.id))
        logger.info(
            "Duplicate create replayed",
            extra={"transaction_id": stored.id, "status": stored.status.value},
        )
        return stored

    # ─── execute ─────────────────────────────────────────────────

    async def execute(
        self, owner_id: OwnerId, transaction_id: TransactionId,
    ) -> TransactionIntent:
        """Validate and apply the transfer, or record why it failed."""
        record = await self._lock_record(owner_id, transaction_id)
        intent = record.to_intent()
        await self._guard(intent, Operation.SYNC)

        sender, recipient = await self._lock_accounts(
            owner_id, intent.recipient_identifier,
        )
        reason = _precheck(intent, sender, recipient)
        if reason is not None:
            return await self._record_failure(record, reason)

        try:
            await self._apply(record, intent, sender, recipient)
        except _AtomicUnitAborted:
            await self.db.rollback()
            return await self._reevaluate(owner_id, transaction_id)
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Transfer rolled back",
                extra={"transaction_id": transaction_id, "owner_id": owner_id},
            )
            raise

        await self.db.refresh(record)
        logger.info(
            "Transfer executed",
            extra={
                "transaction_id": transaction_id,
                "owner_id": owner_id,
                "status": TransactionStatus.SUCCESS.value,
            },
        )
        return record.to_intent()

    async def _apply(
        self,
        record: TransactionRecord,
        intent: TransactionIntent,
        sender: Account,
        recipient: Account,
    ) -> None:
        """Debit, credit, status=success, executed_at — one commit."""
        now = self._clock()
        claimed = await self.db.execute(
            update(TransactionRecord)
            .where(
                TransactionRecord.id == record.id,
                TransactionRecord.status.in_(_values(eligible_statuses(Operation.SYNC))),
            )
            .values(
                status=TransactionStatus.SUCCESS.value,
                executed_at=now,
                failure_reason=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False),
        )
        if claimed.rowcount != 1:
            raise _AtomicUnitAborted()

        debited = await self.db.execute(
            update(Account)
            .where(Account.id == sender.id, Account.balance >= intent.amount)
            .values(balance=Account.balance - intent.amount, updated_at=now)
            .execution_options(synchronize_session=False),
        )
        if debited.rowcount != 1:
            raise _AtomicUnitAborted()

        await self.db.execute(
            update(Account)
            .where(Account.id == recipient.id)
            .values(balance=Account.balance + intent.amount, updated_at=now)
            .execution_options(synchronize_session=False),
        )
        await self.db.commit()

    async def _reevaluate(
        self, owner_id: OwnerId, transaction_id: TransactionId,
    ) -> TransactionIntent:
        """The atomic unit lost a race; decide again against the committed state."""
        record = await self._lock_record(owner_id, transaction_id)
        intent = record.to_intent()
        await self._guard(intent, Operation.SYNC)
        sender, recipient = await self._lock_accounts(
            owner_id, intent.recipient_identifier,
        )
        reason = _precheck(intent, sender, recipient) or FailureReason.INSUFFICIENT_BALANCE
        return await self._record_failure(record, reason)

    async def _record_failure(
        self, record: TransactionRecord, reason: FailureReason,
    ) -> TransactionIntent:
        now = self._clock()
        result = await self.db.execute(
            update(TransactionRecord)
            .where(
                TransactionRecord.id == record.id,
                TransactionRecord.status.in_(_values(eligible_statuses(Operation.SYNC))),
            )
            .values(
                status=TransactionStatus.FAILED.value,
                executed_at=None,
                failure_reason=reason.value,
                updated_at=now,
            )
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(record)
            raise _not_allowed(record.to_intent(), Operation.SYNC)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(
            f"Transfer failed: {reason.value}",
            extra={
                "transaction_id": record.id,
                "status": TransactionStatus.FAILED.value,
                "reason": reason.value,
            },
        )
        return record.to_intent()

    # ─── cancel / list ───────────────────────────────────────────

    async def cancel(
        self, owner_id: OwnerId, transaction_id: TransactionId,
    ) -> TransactionIntent:
        """pending -> cancelled. No balance effect."""
        record = await self._lock_record(owner_id, transaction_id)
        await self._guard(record.to_intent(), Operation.CANCEL)

        now = self._clock()
        result = await self.db.execute(
            update(TransactionRecord)
            .where(
                TransactionRecord.id == record.id,
                TransactionRecord.status.in_(_values(eligible_statuses(Operation.CANCEL))),
            )
            .values(
                status=TransactionStatus.CANCELLED.value,
                failure_reason=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False),
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(record)
            raise _not_allowed(record.to_intent(), Operation.CANCEL)
        await self.db.commit()
        await self.db.refresh(record)
        logger.info(
            "Transaction cancelled",
            extra={"transaction_id": transaction_id, "owner_id": owner_id},
        )
        return record.to_intent()

    async def list(
        self, owner_id: OwnerId, limit: int = 20, offset: int = 0,
    ) -> list[TransactionIntent]:
        """Server-side records of one owner, newest first."""
        result = await self.db.execute(
            select(TransactionRecord)
            .where(TransactionRecord.owner_id == owner_id)
            .order_by(TransactionRecord.created_at.desc(), TransactionRecord.id.desc())
            .limit(limit)
            .offset(offset),
        )
        return [row.to_intent() for row in result.scalars().all()]

    # ─── Lookups ─────────────────────────────────────────────────

    async def _lock_record(
        self, owner_id: OwnerId, transaction_id: TransactionId,
    ) -> TransactionRecord:
        result = await self.db.execute(
            select(TransactionRecord)
            .where(
                TransactionRecord.id == transaction_id,
                TransactionRecord.owner_id == owner_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True),
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise ResourceNotFoundError("Transaction", str(transaction_id))
        return record

    async def _guard(self, intent: TransactionIntent, operation: Operation) -> None:
        try:
            check_transition(intent, operation, snapshot=transaction_snapshot(intent))
        except TransitionNotAllowedError:
            await self.db.rollback()
            raise

    async def _lock_accounts(
        self, owner_id: OwnerId, recipient_identifier: str,
    ) -> tuple[Account | None, Account | None]:
        """Lock sender and recipient rows in primary-key order."""
        ids = (await self.db.execute(
            select(Account.id).where(
                (Account.owner_id == owner_id)
                | (Account.identifier == recipient_identifier),
            ),
        )).scalars().all()
        if not ids:
            return None, None
        rows = (await self.db.execute(
            select(Account)
            .where(Account.id.in_(ids))
            .order_by(Account.id)
            .with_for_update()
            .execution_options(populate_existing=True),
        )).scalars().all()
        sender = next((a for a in rows if a.owner_id == owner_id), None)
        recipient = next((a for a in rows if a.identifier == recipient_identifier), None)
        return sender, recipient

    async def _account_by_owner(self, owner_id: OwnerId) -> Account | None:
        result = await self.db.execute(
            select(Account).where(Account.owner_id == owner_id),
        )
        return result.scalar_one_or_none()

    async def _account_by_identifier(self, identifier: str) -> Account | None:
        result = await self.db.execute(
            select(Account).where(Account.identifier == identifier),
        )
        return result.scalar_one_or_none()


def _precheck(
    intent: TransactionIntent, sender: Account | None, recipient: Account | None,
) -> FailureReason | None:
    """Outcomes decided before the atomic unit; None means the transfer may proceed."""
    if recipient is None:
        return FailureReason.RECIPIENT_NOT_FOUND
    if sender is None:
        return FailureReason.SENDER_ACCOUNT_NOT_FOUND
    if sender.id == recipient.id:
        return FailureReason.SELF_TRANSFER
    if Decimal(sender.balance) < intent.amount:
        return FailureReason.INSUFFICIENT_BALANCE
    return None


def _values(statuses: frozenset[TransactionStatus]) -> list[str]:
    return [s.value for s in statuses]


def _not_allowed(intent: TransactionIntent, operation: Operation) -> TransitionNotAllowedError:
    return TransitionNotAllowedError(
        str(intent.id),
        intent.status.value,
        operation.value,
        context=ErrorContext(
            owner_id=str(intent.owner_id), transaction=transaction_snapshot(intent),
        ),
    )
