"""Account ORM — server-owned balance row, mutated only inside the transfer executor.

Invariants:
    - owner_id is unique: one balance row per account owner
    - identifier (e.g. email) is unique and is what recipients are resolved by
    - balance is non-negative after any successful transfer

Design Decisions:
    - Numeric(18, 2) over Float: monetary amounts are exact decimals
    - Debits use a guarded UPDATE (balance >= amount) in addition to the row lock,
      so a lost lock can never drive a balance negative
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, Numeric, DateTime, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_sync.core.domain_types import DEFAULT_CURRENCY
from ledger_sync.db.base import LedgerBase


class Account(LedgerBase):
    """Account balance — the Ledger Store."""
    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, unique=True,
    )
    identifier: Mapped[str] = mapped_column(
        String(255), nullable=False, unique=True,
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, default=Decimal("0.00"),
    )
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default=DEFAULT_CURRENCY,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
