"""Transaction Intent — the central entity, shared by client and server.

Invariants:
    - id is generated client-side at creation and is the idempotency key end-to-end
    - owner_id, recipient_identifier, amount, note, created_at never change after creation
    - Only status, executed_at, failure_reason move, and only through the transition
      functions below
    - executed_at is set exactly once, on entry into success
    - failure_reason is set on entry into failed and cleared otherwise
    - No transition ever leaves success or cancelled; failed only re-enters the sync path

Design Decisions:
    - Frozen dataclass + dataclasses.replace: every transition yields a new value,
      stale copies cannot be mutated behind the store's back
    - Timestamps normalized to aware UTC: SQLite drops tzinfo, and the history merge
      compares local and remote created_at values
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal

from ledger_sync.core.domain_types import (
    TERMINAL_STATUSES, FailureReason, OwnerId, TransactionId, TransactionStatus,
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite round-trips), convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class TransactionIntent:
    """A recorded desire to move funds, independent of whether it executed."""
    id: TransactionId
    owner_id: OwnerId
    recipient_identifier: str
    amount: Decimal
    note: str
    status: TransactionStatus
    created_at: datetime
    executed_at: datetime | None = None
    failure_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def can_sync(self) -> bool:
        return self.status in (TransactionStatus.PENDING, TransactionStatus.FAILED)

    @property
    def can_cancel(self) -> bool:
        return self.status == TransactionStatus.PENDING

    def same_terms_as(self, other: "TransactionIntent") -> bool:
        """True when both describe the same transfer (immutable fields match)."""
        return (
            self.id == other.id
            and self.owner_id == other.owner_id
            and self.recipient_identifier == other.recipient_identifier
            and Decimal(self.amount) == Decimal(other.amount)
            and self.note == other.note
        )


def new_intent(
    owner_id: OwnerId,
    recipient_identifier: str,
    amount: Decimal,
    note: str,
    now: datetime,
    transaction_id: TransactionId | None = None,
) -> TransactionIntent:
    """Build a fresh pending intent. Inputs must already be validated."""
    return TransactionIntent(
        id=transaction_id or TransactionId(uuid.uuid4()),
        owner_id=owner_id,
        recipient_identifier=recipient_identifier,
        amount=amount,
        note=note,
        status=TransactionStatus.PENDING,
        created_at=as_utc(now),
    )


# ─── Transitions ─────────────────────────────────────────────────
# Guards are checked by the callers (enforce_transitions); these only
# compute the resulting value.

def mark_success(intent: TransactionIntent, executed_at: datetime) -> TransactionIntent:
    return replace(
        intent,
        status=TransactionStatus.SUCCESS,
        executed_at=as_utc(executed_at),
        failure_reason=None,
    )


def mark_failed(
    intent: TransactionIntent, reason: FailureReason | str,
) -> TransactionIntent:
    text = reason.value if isinstance(reason, FailureReason) else reason
    return replace(
        intent,
        status=TransactionStatus.FAILED,
        executed_at=None,
        failure_reason=text,
    )


def mark_cancelled(intent: TransactionIntent) -> TransactionIntent:
    return replace(intent, status=TransactionStatus.CANCELLED, failure_reason=None)
