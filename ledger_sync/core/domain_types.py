"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - TransactionId and OwnerId wrap UUIDs — never pass bare strings as ids
    - Every transaction status is a TransactionStatus member — no raw string matching
    - Failure reasons are human-readable and stable (persisted and shown to users)

Design Decisions:
    - NewType over dataclass wrappers: zero runtime cost, full type-checker support
    - str Enums: serialize to JSON and to String columns without custom encoders
"""

from enum import Enum
from typing import NewType
from uuid import UUID


# ─── Identity Types ──────────────────────────────────────────────

TransactionId = NewType("TransactionId", UUID)
OwnerId = NewType("OwnerId", UUID)


# ─── Enums ───────────────────────────────────────────────────────

class TransactionStatus(str, Enum):
    """Transaction lifecycle states — maps to the `status` column on both hosts."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FailureReason(str, Enum):
    """Business outcomes persisted on `failed` records."""
    INSUFFICIENT_BALANCE = "insufficient balance"
    RECIPIENT_NOT_FOUND = "recipient not found"
    SENDER_ACCOUNT_NOT_FOUND = "sender account not found"
    SELF_TRANSFER = "cannot transfer to own account"


class Operation(str, Enum):
    """Status-mutating operations subject to transition guards."""
    SYNC = "sync"
    CANCEL = "cancel"


TERMINAL_STATUSES = frozenset({
    TransactionStatus.SUCCESS,
    TransactionStatus.FAILED,
    TransactionStatus.CANCELLED,
})

# failed is terminal for every operation except a retried sync
ELIGIBLE_STATUSES: dict[Operation, frozenset[TransactionStatus]] = {
    Operation.SYNC: frozenset({TransactionStatus.PENDING, TransactionStatus.FAILED}),
    Operation.CANCEL: frozenset({TransactionStatus.PENDING}),
}

DEFAULT_CURRENCY = "USD"
