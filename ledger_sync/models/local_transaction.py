"""LocalTransaction ORM — the client's durable queue and history of intents.

Invariants:
    - One row per intent id, written before any network attempt
    - Every column is supplied at insert time; nullable ones explicitly None
    - remote_acknowledged flips to True once the server has returned this id

Design Decisions:
    - Generic Uuid type: stored as CHAR(32) on SQLite, native on PostgreSQL
    - One table serves as both the outbound queue and the local history
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Text, Numeric, DateTime, Boolean, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column

from ledger_sync.core.domain_types import (
    OwnerId, TransactionId, TransactionStatus,
)
from ledger_sync.core.transaction_intent import TransactionIntent, as_utc
from ledger_sync.db.base import LocalBase


class LocalTransaction(LocalBase):
    """Client-side Transaction Record Store row."""
    __tablename__ = "local_transactions"
    __table_args__ = (
        Index("ix_local_transactions_owner_status", "owner_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    recipient_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    executed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    remote_acknowledged: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    @classmethod
    def from_intent(cls, intent: TransactionIntent, now: datetime) -> "LocalTransaction":
        return cls(
            id=intent.id,
            owner_id=intent.owner_id,
            recipient_identifier=intent.recipient_identifier,
            amount=intent.amount,
            note=intent.note,
            status=intent.status.value,
            failure_reason=intent.failure_reason,
            executed_at=intent.executed_at,
            created_at=intent.created_at,
            updated_at=now,
            remote_acknowledged=False,
        )

    def to_intent(self) -> TransactionIntent:
        return TransactionIntent(
            id=TransactionId(self.id),
            owner_id=OwnerId(self.owner_id),
            recipient_identifier=self.recipient_identifier,
            amount=Decimal(self.amount),
            note=self.note,
            status=TransactionStatus(self.status),
            created_at=as_utc(self.created_at),
            executed_at=as_utc(self.executed_at) if self.executed_at else None,
            failure_reason=self.failure_reason,
        )
