"""Local Transaction Store — the client's durable table of transfer intents.

Invariants:
    - insert() commits before returning: an intent exists locally before any network call
    - transition() is an atomic compare-and-set: the UPDATE only matches rows whose
      current status is in `allowed`, so a racing cancel and sync cannot both win
    - The loser of a race gets TransitionNotAllowedError, never a silent overwrite
    - Records are only ever deleted by wipe() (logout-style, whole owner)

Design Decisions:
    - Conditional UPDATE over SELECT-then-UPDATE: SQLite has no row locks, and the
      status predicate in the WHERE clause makes the read-modify-write one statement
    - Reuses DatabaseSessionManager so SQLAlchemy errors surface as DatabaseError
"""

import logging
from collections.abc import Callable, Collection
from datetime import datetime, timezone

from sqlalchemy import select, update, delete, or_

from ledger_sync.core.domain_types import OwnerId, TransactionId, TransactionStatus
from ledger_sync.core.errors import ResourceNotFoundError, TransitionNotAllowedError
from ledger_sync.core.transaction_intent import TransactionIntent
from ledger_sync.db.base import LocalBase
from ledger_sync.infrastructure.database import DatabaseSessionManager
from ledger_sync.models.local_transaction import LocalTransaction

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalTransactionStore:
    """SQLAlchemy-backed implementation of the TransactionStore protocol."""

    def __init__(
        self,
        db: DatabaseSessionManager,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._db = db
        self._clock = clock

    async def create_schema(self) -> None:
        async with self._db.engine.begin() as conn:
            await conn.run_sync(LocalBase.metadata.create_all)

    async def insert(self, intent: TransactionIntent) -> None:
        async with self._db.session() as db:
            db.add(LocalTransaction.from_intent(intent, self._clock()))
            await db.commit()
        logger.info(
            "Intent stored locally",
            extra={"transaction_id": intent.id, "status": intent.status.value},
        )

    async def get(self, transaction_id: TransactionId) -> TransactionIntent:
        async with self._db.session() as db:
            row = await db.get(LocalTransaction, transaction_id)
        if row is None:
            raise ResourceNotFoundError("Transaction", str(transaction_id))
        return row.to_intent()

    async def list_all(self, owner_id: OwnerId) -> list[TransactionIntent]:
        query = (
            select(LocalTransaction)
            .where(LocalTransaction.owner_id == owner_id)
            .order_by(LocalTransaction.created_at.desc())
        )
        return await self._fetch(query)

    async def list_local_only(self, owner_id: OwnerId) -> list[TransactionIntent]:
        """Records without a known remote outcome: pending, or never seen by the server."""
        query = (
            select(LocalTransaction)
            .where(
                LocalTransaction.owner_id == owner_id,
                or_(
                    LocalTransaction.status == TransactionStatus.PENDING.value,
                    LocalTransaction.remote_acknowledged.is_(False),
                ),
            )
            .order_by(LocalTransaction.created_at.desc())
        )
        return await self._fetch(query)

    async def transition(
        self,
        transaction_id: TransactionId,
        *,
        allowed: Collection[TransactionStatus],
        operation: str,
        status: TransactionStatus,
        executed_at: datetime | None = None,
        failure_reason: str | None = None,
        acknowledged: bool | None = None,
    ) -> TransactionIntent:
        """Move one record to `status` iff its current status is in `allowed`."""
        values = {
            "status": status.value,
            "executed_at": executed_at,
            "failure_reason": failure_reason,
            "updated_at": self._clock(),
        }
        if acknowledged is not None:
            values["remote_acknowledged"] = acknowledged

        async with self._db.session() as db:
            result = await db.execute(
                update(LocalTransaction)
                .where(
                    LocalTransaction.id == transaction_id,
                    LocalTransaction.status.in_([s.value for s in allowed]),
                )
                .values(**values)
                .execution_options(synchronize_session=False),
            )
            applied = result.rowcount == 1
            if applied:
                await db.commit()
            else:
                await db.rollback()
            row = await db.get(LocalTransaction, transaction_id)

        if row is None:
            raise ResourceNotFoundError("Transaction", str(transaction_id))
        if not applied:
            raise TransitionNotAllowedError(str(transaction_id), row.status, operation)
        logger.info(
            f"Local status -> {status.value}",
            extra={
                "transaction_id": transaction_id,
                "status": status.value,
                "operation": operation,
            },
        )
        return row.to_intent()

    async def mark_acknowledged(self, transaction_id: TransactionId) -> None:
        async with self._db.session() as db:
            await db.execute(
                update(LocalTransaction)
                .where(LocalTransaction.id == transaction_id)
                .values(remote_acknowledged=True)
                .execution_options(synchronize_session=False),
            )
            await db.commit()

    async def wipe(self, owner_id: OwnerId) -> int:
        async with self._db.session() as db:
            result = await db.execute(
                delete(LocalTransaction).where(LocalTransaction.owner_id == owner_id),
            )
            await db.commit()
        logger.info(
            f"Wiped {result.rowcount} local transaction(s)",
            extra={"owner_id": owner_id},
        )
        return result.rowcount

    async def _fetch(self, query) -> list[TransactionIntent]:
        async with self._db.session() as db:
            result = await db.execute(query)
            return [row.to_intent() for row in result.scalars().all()]
