"""History Reconciliation — merges server-authoritative records with local-only ones.

Invariants:
    - Union keyed by id; the server copy wins whenever an id is present on both sides
    - Result ordered by created_at descending (ties broken by id for stability)
    - Pure: the caller fetches both lists

Design Decisions:
    - Server precedence over "newest status wins": the server is the source of
      truth for any id it has ever seen, even if the local copy looks more final
"""

from collections.abc import Iterable

from ledger_sync.core.domain_types import TERMINAL_STATUSES, TransactionStatus
from ledger_sync.core.transaction_intent import TransactionIntent, as_utc


def order_newest_first(intents: Iterable[TransactionIntent]) -> list[TransactionIntent]:
    return sorted(
        intents,
        key=lambda t: (as_utc(t.created_at), str(t.id)),
        reverse=True,
    )


def merge_history(
    remote: Iterable[TransactionIntent],
    local_only: Iterable[TransactionIntent],
) -> list[TransactionIntent]:
    """Union of remote and local records, server copy preferred on conflict."""
    merged = {intent.id: intent for intent in local_only}
    merged.update({intent.id: intent for intent in remote})
    return order_newest_first(merged.values())


def outcomes_to_adopt(
    remote: Iterable[TransactionIntent],
    local: Iterable[TransactionIntent],
) -> list[TransactionIntent]:
    """Remote terminal outcomes that a local pending/failed copy has not caught up with."""
    local_by_id = {intent.id: intent for intent in local}
    stale = []
    for intent in remote:
        mine = local_by_id.get(intent.id)
        if mine is None or intent.status not in TERMINAL_STATUSES:
            continue
        if mine.status not in (TransactionStatus.PENDING, TransactionStatus.FAILED):
            continue
        if mine.status != intent.status or mine.failure_reason != intent.failure_reason:
            stale.append(intent)
    return stale
