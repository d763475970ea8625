"""Service test fixtures — FastAPI test client, in-process gateway, sync coordinator.

Invariants:
    - get_db dependency overridden to use the in-memory ledger
    - app.state.token_verifier knows two tokens: alice-token and bob-token
    - InProcessGateway runs the real TransferExecutor, one session per call, and can
      inject transport failures before or after the server-side effect

Design Decisions:
    - In-process gateway for coordinator tests: real server semantics without HTTP;
      the HTTP path has its own end-to-end tests
"""

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient

from ledger_sync.api.dependencies import get_db
from ledger_sync.core.domain_types import OwnerId
from ledger_sync.core.errors import RemoteUnavailableError
from ledger_sync.infrastructure.auth import StaticTokenVerifier
from ledger_sync.infrastructure.database import DatabaseSessionManager
from ledger_sync.main import app
from ledger_sync.services.sync_coordinator import SyncCoordinator
from ledger_sync.services.transfer_executor import TransferExecutor


@pytest.fixture
async def client(ledger_engine, ledger_session_factory, accounts, alice, bob):
    """FastAPI test client authenticated as alice."""
    async def override_get_db():
        async with ledger_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.db_manager = DatabaseSessionManager(engine=ledger_engine)
    app.state.token_verifier = StaticTokenVerifier({
        "alice-token": alice.owner_id,
        "bob-token": bob.owner_id,
    })

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Authorization": "Bearer alice-token"},
    ) as c:
        yield c

    app.dependency_overrides.clear()
    app.state.token_verifier = None
    app.state.db_manager = None


class FakeConnectivity:
    def __init__(self, online: bool = True):
        self.online = online

    async def is_online(self) -> bool:
        return self.online


class InProcessGateway:
    """TransferGateway backed directly by TransferExecutor.

    Knobs:
      - fail_before: {op: exception} raised once before the server runs
      - drop_after: set of ops whose server effect happens but whose answer is lost
      - delay: seconds to wait before reaching the server
      - hold_after: {op: seconds} to wait after the server effect, before answering
      - stale_create: create_pending echoes the local intent without asking the server
    """

    def __init__(self, session_factory, owner_id: OwnerId):
        self._factory = session_factory
        self.owner_id = owner_id
        self.calls: list[tuple[str, object]] = []
        self.fail_before: dict[str, Exception] = {}
        self.drop_after: set[str] = set()
        self.delay = 0.0
        self.hold_after: dict[str, float] = {}
        self.stale_create = False

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    async def _run(self, op, key, call):
        self.calls.append((op, key))
        if self.delay:
            await asyncio.sleep(self.delay)
        failure = self.fail_before.pop(op, None)
        if failure is not None:
            raise failure
        async with self._factory() as db:
            result = await call(TransferExecutor(db))
        if op in self.hold_after:
            await asyncio.sleep(self.hold_after[op])
        if op in self.drop_after:
            raise RemoteUnavailableError("response lost", "timeout")
        return result

    async def create_pending(self, intent):
        if self.stale_create:
            self.calls.append(("create", intent.id))
            return intent
        intent_and_flag = await self._run(
            "create", intent.id,
            lambda ex: ex.create_pending(
                self.owner_id, intent.recipient_identifier, intent.amount, intent.note,
                transaction_id=intent.id, created_at=intent.created_at,
            ),
        )
        return intent_and_flag[0]

    async def execute(self, transaction_id):
        return await self._run(
            "execute", transaction_id,
            lambda ex: ex.execute(self.owner_id, transaction_id),
        )

    async def cancel(self, transaction_id):
        return await self._run(
            "cancel", transaction_id,
            lambda ex: ex.cancel(self.owner_id, transaction_id),
        )

    async def list_transactions(self, limit, offset):
        return await self._run(
            "list", offset,
            lambda ex: ex.list(self.owner_id, limit=limit, offset=offset),
        )


@pytest.fixture
def connectivity():
    return FakeConnectivity()


@pytest.fixture
def gateway(ledger_session_factory, accounts, alice):
    return InProcessGateway(ledger_session_factory, alice.owner_id)


@pytest.fixture
def coordinator(local_store, gateway, connectivity, clock, alice):
    return SyncCoordinator(
        alice.owner_id,
        local_store,
        gateway,
        connectivity,
        sync_timeout_seconds=0.5,
        history_page_size=2,
        clock=clock,
    )


@pytest.fixture
def server(ledger_session_factory):
    """Direct access to the server executor, as another device would have."""
    class _Server:
        async def run(self, call):
            async with ledger_session_factory() as db:
                return await call(TransferExecutor(db))
    return _Server()

