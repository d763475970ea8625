"""Transaction Schemas — Pydantic models with field-level validation for the transfer API.

Invariants:
    - TransferCreate: recipient email-shaped, amount > 0 with 2 decimals, note <= 500 chars
    - TransactionResponse mirrors the wire shape
      {id, amount, recipientIdentifier, note, status, failureReason, executedAt, createdAt}
    - amount serializes as a JSON number

Design Decisions:
    - alias_generator=to_camel + populate_by_name: Python code uses snake_case while the
      wire stays camelCase (ADR: mobile client contract)
    - from_attributes: responses are built straight from core TransactionIntent values
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from ledger_sync.core.domain_types import OwnerId, TransactionId, TransactionStatus
from ledger_sync.core.errors import TransferValidationError
from ledger_sync.core.transaction_intent import TransactionIntent, as_utc
from ledger_sync.core.validate_transfer import (
    MAX_NOTE_LENGTH, validate_amount, validate_recipient_identifier,
)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True,
    )


class TransferCreate(_WireModel):
    """Transfer intent creation — `id` is the client's idempotency key."""
    id: UUID | None = None
    recipient_identifier: str = Field(max_length=255)
    amount: Decimal
    note: str = Field("", max_length=MAX_NOTE_LENGTH)
    created_at: datetime | None = None

    @field_validator("recipient_identifier")
    @classmethod
    def check_recipient(cls, v: str) -> str:
        try:
            return validate_recipient_identifier(v)
        except TransferValidationError as e:
            raise ValueError(e.message)

    @field_validator("amount")
    @classmethod
    def check_amount(cls, v: Decimal) -> Decimal:
        try:
            return validate_amount(v)
        except TransferValidationError as e:
            raise ValueError(e.message)

    @field_validator("note", mode="before")
    @classmethod
    def default_note(cls, v: str | None) -> str:
        return "" if v is None else v


class TransactionResponse(_WireModel):
    """Public transaction shape returned by every transfer endpoint."""
    id: UUID
    amount: Decimal
    recipient_identifier: str
    note: str
    status: TransactionStatus
    failure_reason: str | None = None
    executed_at: datetime | None = None
    created_at: datetime

    @field_serializer("amount")
    def serialize_amount(self, amount: Decimal) -> float:
        return float(amount)

    @classmethod
    def from_intent(cls, intent: TransactionIntent) -> "TransactionResponse":
        return cls.model_validate(intent)

    def to_intent(self, owner_id: OwnerId) -> TransactionIntent:
        """Rebuild the domain value; the wire shape carries no owner, the caller knows it."""
        return TransactionIntent(
            id=TransactionId(self.id),
            owner_id=owner_id,
            recipient_identifier=self.recipient_identifier,
            amount=Decimal(str(self.amount)),
            note=self.note,
            status=self.status,
            created_at=as_utc(self.created_at),
            executed_at=as_utc(self.executed_at) if self.executed_at else None,
            failure_reason=self.failure_reason,
        )


def transaction_snapshot(intent: TransactionIntent) -> dict:
    """Wire form of a record, for error envelopes."""
    return TransactionResponse.from_intent(intent).model_dump(mode="json", by_alias=True)
