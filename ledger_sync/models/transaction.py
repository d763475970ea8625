"""TransactionRecord ORM — the server's copy of every transfer intent.

Invariants:
    - id is the client-generated idempotency key (server generates one only when
      the client sends none)
    - amount, recipient_identifier, note, owner_id, created_at never change
    - status moves only through the transfer executor's guarded UPDATEs
    - executed_at set only on success; failure_reason set only on failed

Design Decisions:
    - Single table for pending and settled records: one source of truth per id
    - updated_at kept for audit; not part of the wire shape
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Text, Numeric, DateTime, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger_sync.core.domain_types import (
    OwnerId, TransactionId, TransactionStatus,
)
from ledger_sync.core.transaction_intent import TransactionIntent, as_utc
from ledger_sync.db.base import LedgerBase


class TransactionRecord(LedgerBase):
    """Server-side Transaction Record Store row."""
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_owner_created", "owner_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    recipient_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.PENDING.value,
    )
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_intent(self) -> TransactionIntent:
        return TransactionIntent(
            id=TransactionId(self.id),
            owner_id=OwnerId(self.owner_id),
            recipient_identifier=self.recipient_identifier,
            amount=Decimal(self.amount),
            note=self.note or "",
            status=TransactionStatus(self.status),
            created_at=as_utc(self.created_at),
            executed_at=as_utc(self.executed_at) if self.executed_at else None,
            failure_reason=self.failure_reason,
        )
