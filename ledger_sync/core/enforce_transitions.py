"""Transition Enforcement — guard rules for status-mutating operations.

Invariants:
    - sync requires pending or failed; cancel requires pending
    - The guard reads the CURRENT status; a rejected operation changes nothing
    - Identical rules on client (local store) and server (transfer executor)

Design Decisions:
    - Pure functions returning None or raising: callers decide how to read the
      current status atomically (conditional UPDATE on both hosts)
"""

from ledger_sync.core.domain_types import (
    ELIGIBLE_STATUSES, Operation, TransactionStatus,
)
from ledger_sync.core.errors import ErrorContext, TransitionNotAllowedError
from ledger_sync.core.transaction_intent import TransactionIntent


def eligible_statuses(operation: Operation) -> frozenset[TransactionStatus]:
    return ELIGIBLE_STATUSES[operation]


def is_eligible(intent: TransactionIntent, operation: Operation) -> bool:
    return intent.status in ELIGIBLE_STATUSES[operation]


def check_transition(
    intent: TransactionIntent,
    operation: Operation,
    snapshot: dict | None = None,
) -> None:
    """Raise TransitionNotAllowedError if `operation` cannot run on `intent`.

    `snapshot` is the wire form of the record, attached so the caller can
    render what is now true.
    """
    if is_eligible(intent, operation):
        return
    raise TransitionNotAllowedError(
        str(intent.id),
        intent.status.value,
        operation.value,
        context=ErrorContext(owner_id=str(intent.owner_id), transaction=snapshot),
    )
