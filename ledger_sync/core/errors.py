"""Error Hierarchy — typed, categorized exceptions for every transfer failure mode.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Validation/not-found errors (400-level) are never retried automatically
    - Transport errors (RemoteUnavailableError) are recoverable: the record stays pending
    - Business outcomes (insufficient balance, unknown recipient at execution) are NOT
      exceptions — they are persisted as `failed` records
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with LedgerSyncError base: FastAPI global handler catches all,
      and the HTTP client rebuilds the same types from the wire envelope
      (ADR: one error vocabulary on both sides of the wire)
    - ErrorContext carries a snapshot of the current record so a rejected operation
      still tells the caller "what is now true"
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHENTICATION = "authentication"
    CONFLICT = "conflict"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    transaction_id: str | None = None
    owner_id: str | None = None
    operation: str | None = None
    transaction: dict[str, Any] | None = None
    resource_type: str | None = None
    resource_id: str | None = None


class LedgerSyncError(Exception):
    """Base exception for all ledger sync errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    @property
    def recoverable(self) -> bool:
        return self.severity in (ErrorSeverity.INFO, ErrorSeverity.WARNING)

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "transaction_id": self.context.transaction_id,
                    "operation": self.context.operation,
                    "transaction": self.context.transaction,
                    "resource_type": self.context.resource_type,
                    "resource_id": self.context.resource_id,
                },
            }
        }


# ─── Domain Errors (400-level) ──────────────────────────────────

class TransferValidationError(LedgerSyncError):
    """Transfer input is malformed (amount, recipient, note)."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class TransitionNotAllowedError(LedgerSyncError):
    """Operation attempted on a record whose status is not eligible for it."""
    def __init__(
        self,
        transaction_id: str,
        current_status: str,
        operation: str,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.transaction_id = transaction_id
        ctx.operation = operation
        super().__init__(
            f"Cannot {operation} {current_status} transaction",
            "TRANSITION_NOT_ALLOWED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, ctx, 400,
        )
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.operation = operation

    @property
    def transaction(self) -> dict | None:
        """Wire snapshot of the record as it stands, when the rejecting side sent one."""
        return self.context.transaction


class ResourceNotFoundError(LedgerSyncError):
    """Requested resource does not exist (or belongs to another owner)."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
        code: str = "RESOURCE_NOT_FOUND",
    ):
        ctx = context or ErrorContext()
        ctx.resource_type = resource_type
        ctx.resource_id = resource_id
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            code, ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, ctx, 404,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class RecipientNotFoundError(ResourceNotFoundError):
    """Recipient identifier does not resolve to an account."""
    def __init__(self, recipient_identifier: str, context: ErrorContext | None = None):
        super().__init__(
            "Recipient", recipient_identifier, context, code="RECIPIENT_NOT_FOUND",
        )


class AuthenticationError(LedgerSyncError):
    """Bearer token missing or not recognized."""
    def __init__(self, message: str = "Not authenticated", context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHENTICATED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.ERROR, context, 401,
        )


class IdempotencyConflictError(LedgerSyncError):
    """A transaction id was reused with different immutable fields."""
    def __init__(self, transaction_id: str, context: ErrorContext | None = None):
        ctx = context or ErrorContext()
        ctx.transaction_id = transaction_id
        super().__init__(
            f"Transaction id '{transaction_id}' is already in use with different details",
            "IDEMPOTENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, ctx, 409,
        )


# ─── Infrastructure Errors (500-level) ──────────────────────────

class DatabaseError(LedgerSyncError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class RemoteUnavailableError(LedgerSyncError):
    """The transfer service could not be reached or gave no usable answer.

    Never a terminal outcome: the server-side effect may or may not have
    happened, so the local record is left pending and may be synced again.
    """
    def __init__(self, message: str, reason: str, context: ErrorContext | None = None):
        super().__init__(
            f"Transfer service unavailable ({reason}): {message}",
            "REMOTE_UNAVAILABLE", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 503,
        )
        self.reason = reason
