"""Root conftest — shared test configuration and database fixtures.

Invariants:
    - Every test gets fresh SQLite databases (ledger and local store) under tmp_path
    - Seeded ledger: alice (1000.00) and bob (0.00)

Design Decisions:
    - SQLite files over :memory:: concurrent sessions need separate connections;
      row locks are not exercised here, the guarded UPDATEs carry the invariants
"""

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine

# Ensure tests never reach a real ledger database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("LOG_FORMAT", "text")

from ledger_sync.db.base import LedgerBase  # noqa: E402
from ledger_sync.db.session import session_factory_for  # noqa: E402
from ledger_sync.infrastructure.database import DatabaseSessionManager  # noqa: E402
from ledger_sync.infrastructure.local_store import LocalTransactionStore  # noqa: E402
from ledger_sync.models.account import Account  # noqa: E402


@dataclass(frozen=True)
class AccountSeed:
    owner_id: UUID
    identifier: str
    balance: Decimal


ALICE = AccountSeed(
    UUID("11111111-1111-1111-1111-111111111111"), "alice@example.com", Decimal("1000.00"),
)
BOB = AccountSeed(
    UUID("22222222-2222-2222-2222-222222222222"), "bob@example.com", Decimal("0.00"),
)


class StepClock:
    """Deterministic clock: each call is one minute after the previous one."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def alice() -> AccountSeed:
    return ALICE


@pytest.fixture
def bob() -> AccountSeed:
    return BOB


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
async def ledger_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(LedgerBase.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(LedgerBase.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def ledger_session_factory(ledger_engine):
    return session_factory_for(ledger_engine)


@pytest.fixture
async def test_db(ledger_session_factory):
    async with ledger_session_factory() as session:
        yield session


@pytest.fixture
async def accounts(ledger_session_factory):
    """Seed alice and bob in the ledger."""
    async with ledger_session_factory() as db:
        for seed in (ALICE, BOB):
            db.add(Account(
                owner_id=seed.owner_id,
                identifier=seed.identifier,
                balance=seed.balance,
                currency="USD",
            ))
        await db.commit()
    return ALICE, BOB


@pytest.fixture
def balance_of(ledger_session_factory):
    """Read a balance through a fresh session (never a cached ORM object)."""
    async def _read(owner_id: UUID) -> Decimal:
        async with ledger_session_factory() as db:
            result = await db.execute(
                select(Account.balance).where(Account.owner_id == owner_id),
            )
            return Decimal(result.scalar_one())
    return _read


@pytest.fixture
async def local_store(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'local.db'}", echo=False,
    )
    store = LocalTransactionStore(DatabaseSessionManager(engine=engine))
    await store.create_schema()
    yield store
    await engine.dispose()
