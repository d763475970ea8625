"""Transfer Input Validation — rejects malformed intents before anything is written.

Invariants:
    - recipient identifier: stripped, non-empty, email-shaped, at most 255 chars
    - amount: finite, strictly positive, below MAX_AMOUNT, at most 2 decimal places
    - note: optional, at most 500 chars (None becomes "")

Design Decisions:
    - Raises TransferValidationError (not ValueError) so the client coordinator can
      surface it directly; Pydantic validators on the server wrap the same checks
"""

import re
from decimal import Decimal, InvalidOperation

from ledger_sync.core.errors import TransferValidationError

MAX_RECIPIENT_LENGTH = 255
MAX_NOTE_LENGTH = 500
AMOUNT_EXPONENT = Decimal("0.01")
# 13 integer digits + 2 decimals: every accepted amount survives a JSON number (IEEE double)
MAX_AMOUNT = Decimal("10000000000000")

_RECIPIENT_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+$")


def validate_recipient_identifier(value: str | None) -> str:
    if value is None:
        raise TransferValidationError("Recipient identifier is required", "recipient_identifier")
    value = value.strip()
    if not value:
        raise TransferValidationError("Recipient identifier is required", "recipient_identifier")
    if len(value) > MAX_RECIPIENT_LENGTH:
        raise TransferValidationError(
            f"Recipient identifier exceeds {MAX_RECIPIENT_LENGTH} characters",
            "recipient_identifier",
        )
    if not _RECIPIENT_PATTERN.match(value):
        raise TransferValidationError("Invalid recipient identifier", "recipient_identifier")
    return value


def validate_amount(value: Decimal | int | float | str | None) -> Decimal:
    if value is None or isinstance(value, bool):
        raise TransferValidationError("Amount is required", "amount")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise TransferValidationError("Amount must be a number", "amount")
    if not amount.is_finite():
        raise TransferValidationError("Amount must be a finite number", "amount")
    if amount <= 0:
        raise TransferValidationError("Amount must be greater than 0", "amount")
    if amount >= MAX_AMOUNT:
        raise TransferValidationError(f"Amount must be less than {MAX_AMOUNT}", "amount")
    if amount != amount.quantize(AMOUNT_EXPONENT):
        raise TransferValidationError("Amount has more than 2 decimal places", "amount")
    return amount.quantize(AMOUNT_EXPONENT)


def validate_note(value: str | None) -> str:
    if value is None:
        return ""
    if len(value) > MAX_NOTE_LENGTH:
        raise TransferValidationError(
            f"Note exceeds {MAX_NOTE_LENGTH} characters", "note",
        )
    return value


def validate_transfer_input(
    recipient_identifier: str | None,
    amount: Decimal | int | float | str | None,
    note: str | None,
) -> tuple[str, Decimal, str]:
    """Validate and normalize all user-supplied transfer fields."""
    return (
        validate_recipient_identifier(recipient_identifier),
        validate_amount(amount),
        validate_note(note),
    )
