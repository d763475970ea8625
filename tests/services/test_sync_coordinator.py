"""Sync Coordinator — client-side create / sync / cancel / history against a live executor.

Invariants:
    - Invalid input is rejected before anything is written
    - A created intent is stored locally before any network call, and stays pending
      when the server is offline, slow or unreachable
    - Lost responses never cause a second debit: a retried sync converges on the
      server's stored outcome
    - Concurrent syncs of one id reach the server's execute once
    - Local cancel works offline; mirroring it to the server never raises
    - History: server copy wins, local-only records are kept, newest first,
      and the local store catches up with terminal server outcomes

Design Decisions:
    - InProcessGateway (conftest) runs the real TransferExecutor, so every
      balance assertion is against the actual ledger
"""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from ledger_sync.core.domain_types import TransactionStatus
from ledger_sync.core.errors import (
    RemoteUnavailableError,
    ResourceNotFoundError,
    TransferValidationError,
    TransitionNotAllowedError,
)
from ledger_sync.models.account import Account
from ledger_sync.services.sync_coordinator import SyncCoordinator


async def _top_up(ledger_session_factory, owner_id, balance: str):
    async with ledger_session_factory() as db:
        await db.execute(
            update(Account).where(Account.owner_id == owner_id)
            .values(balance=Decimal(balance)),
        )
        await db.commit()


# ─── create ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_invalid_input_is_rejected_before_any_write(coordinator, local_store, gateway, alice):
    with pytest.raises(TransferValidationError):
        await coordinator.create("bob@example.com", "-5")
    with pytest.raises(TransferValidationError):
        await coordinator.create("not-an-email", "5")

    assert await local_store.list_all(alice.owner_id) == []
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_create_online_executes_immediately(
    coordinator, local_store, gateway, balance_of, alice, bob,
):
    intent = await coordinator.create("bob@example.com", "100", "rent")

    assert intent.status == TransactionStatus.SUCCESS
    assert (await local_store.get(intent.id)).status == TransactionStatus.SUCCESS
    assert [op for op, _ in gateway.calls] == ["create", "execute"]
    assert await balance_of(alice.owner_id) == Decimal("900.00")
    assert await balance_of(bob.owner_id) == Decimal("100.00")


@pytest.mark.asyncio
async def test_create_offline_stays_pending(
    coordinator, connectivity, local_store, gateway, balance_of, alice,
):
    connectivity.online = False

    intent = await coordinator.create("bob@example.com", "100")

    assert intent.status == TransactionStatus.PENDING
    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING
    assert gateway.calls == []
    assert await balance_of(alice.owner_id) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_create_with_unreachable_server_stays_pending(coordinator, gateway):
    gateway.fail_before["create"] = RemoteUnavailableError("refused", "connection_error")

    intent = await coordinator.create("bob@example.com", "100")

    assert intent.status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_insufficient_balance_is_recorded_locally_as_failed(
    coordinator, local_store, balance_of, alice,
):
    intent = await coordinator.create("bob@example.com", "2000")

    assert intent.status == TransactionStatus.FAILED
    assert intent.failure_reason == "insufficient balance"
    assert (await local_store.get(intent.id)).failure_reason == "insufficient balance"
    assert await balance_of(alice.owner_id) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_unknown_recipient_is_recorded_locally_as_failed(coordinator, gateway):
    intent = await coordinator.create("carol@example.com", "10")

    assert intent.status == TransactionStatus.FAILED
    assert intent.failure_reason == "recipient not found"
    assert gateway.count("execute") == 0


@pytest.mark.asyncio
async def test_create_for_owner_without_account_stays_pending(
    local_store, gateway, connectivity, clock, balance_of, alice,
):
    stranger = uuid4()
    gateway.owner_id = stranger
    coordinator = SyncCoordinator(stranger, local_store, gateway, connectivity, clock=clock)

    intent = await coordinator.create("bob@example.com", "10")

    assert intent.status == TransactionStatus.PENDING
    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING
    assert gateway.count("create") == 1
    assert gateway.count("execute") == 0
    assert await balance_of(alice.owner_id) == Decimal("1000.00")


# ─── sync ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_sync_after_coming_online(coordinator, connectivity, balance_of, alice):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "100")
    connectivity.online = True

    done = await coordinator.sync(intent.id)

    assert done.status == TransactionStatus.SUCCESS
    assert await balance_of(alice.owner_id) == Decimal("900.00")


@pytest.mark.asyncio
async def test_sync_offline_raises_and_keeps_pending(coordinator, connectivity, local_store):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "100")

    with pytest.raises(RemoteUnavailableError) as exc_info:
        await coordinator.sync(intent.id)

    assert exc_info.value.reason == "offline"
    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_timeout_keeps_pending_then_retry_succeeds(
    coordinator, gateway, local_store, balance_of, alice,
):
    gateway.delay = 1.0
    intent = await coordinator.create("bob@example.com", "100")
    assert intent.status == TransactionStatus.PENDING

    with pytest.raises(RemoteUnavailableError) as exc_info:
        await coordinator.sync(intent.id)
    assert exc_info.value.reason == "timeout"
    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING

    gateway.delay = 0
    done = await coordinator.sync(intent.id)
    assert done.status == TransactionStatus.SUCCESS
    assert await balance_of(alice.owner_id) == Decimal("900.00")


@pytest.mark.asyncio
async def test_lost_execute_response_converges_without_second_debit(
    coordinator, gateway, local_store, balance_of, alice, bob,
):
    gateway.drop_after.add("execute")
    intent = await coordinator.create("bob@example.com", "100")
    assert intent.status == TransactionStatus.PENDING
    assert await balance_of(alice.owner_id) == Decimal("900.00")

    gateway.drop_after.clear()
    done = await coordinator.sync(intent.id)

    assert done.status == TransactionStatus.SUCCESS
    assert gateway.count("execute") == 1
    assert (await local_store.get(intent.id)).status == TransactionStatus.SUCCESS
    assert await balance_of(alice.owner_id) == Decimal("900.00")
    assert await balance_of(bob.owner_id) == Decimal("100.00")


@pytest.mark.asyncio
async def test_cancelled_sync_keeps_pending_and_releases_lock(
    coordinator, connectivity, gateway, local_store, balance_of, alice,
):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "100")
    connectivity.online = True
    coordinator.sync_timeout_seconds = 5.0
    gateway.hold_after["execute"] = 5.0

    task = asyncio.create_task(coordinator.sync(intent.id))
    for _ in range(200):
        if await balance_of(alice.owner_id) == Decimal("900.00"):
            break
        await asyncio.sleep(0.01)
    assert await balance_of(alice.owner_id) == Decimal("900.00")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING
    assert coordinator._locks._locks == {}

    gateway.hold_after.clear()
    done = await coordinator.sync(intent.id)

    assert done.status == TransactionStatus.SUCCESS
    assert gateway.count("execute") == 1
    assert await balance_of(alice.owner_id) == Decimal("900.00")


@pytest.mark.asyncio
async def test_rejected_sync_adopts_server_outcome(
    coordinator, gateway, local_store, balance_of, alice,
):
    gateway.drop_after.add("execute")
    intent = await coordinator.create("bob@example.com", "100")
    gateway.drop_after.clear()
    gateway.stale_create = True

    done = await coordinator.sync(intent.id)

    assert done.status == TransactionStatus.SUCCESS
    assert done.executed_at is not None
    assert gateway.count("execute") == 2
    assert (await local_store.get(intent.id)).status == TransactionStatus.SUCCESS
    assert await balance_of(alice.owner_id) == Decimal("900.00")


@pytest.mark.asyncio
async def test_failed_transfer_retried_after_top_up(
    coordinator, ledger_session_factory, balance_of, alice,
):
    intent = await coordinator.create("bob@example.com", "1500")
    assert intent.status == TransactionStatus.FAILED

    await _top_up(ledger_session_factory, alice.owner_id, "2000.00")
    done = await coordinator.sync(intent.id)

    assert done.status == TransactionStatus.SUCCESS
    assert done.failure_reason is None
    assert await balance_of(alice.owner_id) == Decimal("500.00")


@pytest.mark.asyncio
async def test_sync_of_settled_transaction_is_rejected_locally(coordinator, gateway):
    intent = await coordinator.create("bob@example.com", "100")
    calls_before = len(gateway.calls)

    with pytest.raises(TransitionNotAllowedError):
        await coordinator.sync(intent.id)
    assert len(gateway.calls) == calls_before


@pytest.mark.asyncio
async def test_sync_unknown_id_not_found(coordinator):
    with pytest.raises(ResourceNotFoundError):
        await coordinator.sync(uuid4())


@pytest.mark.asyncio
async def test_concurrent_syncs_of_one_id_execute_once(
    coordinator, connectivity, gateway, balance_of, alice,
):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "100")
    connectivity.online = True
    gateway.delay = 0.05

    results = await asyncio.gather(
        coordinator.sync(intent.id),
        coordinator.sync(intent.id),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, TransitionNotAllowedError)]
    assert len(succeeded) == 1 and len(rejected) == 1
    assert gateway.count("execute") == 1
    assert await balance_of(alice.owner_id) == Decimal("900.00")


@pytest.mark.asyncio
async def test_syncs_of_different_ids_run_independently(
    coordinator, connectivity, gateway, balance_of, alice,
):
    connectivity.online = False
    first = await coordinator.create("bob@example.com", "100")
    second = await coordinator.create("bob@example.com", "50")
    connectivity.online = True
    gateway.delay = 0.05

    done = await asyncio.gather(coordinator.sync(first.id), coordinator.sync(second.id))

    assert [d.status for d in done] == [TransactionStatus.SUCCESS] * 2
    assert await balance_of(alice.owner_id) == Decimal("850.00")
    assert coordinator._locks._locks == {}


# ─── cancel ──────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_offline_cancel_blocks_later_sync(
    coordinator, connectivity, gateway, local_store, balance_of, alice,
):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "100")

    cancelled = await coordinator.cancel(intent.id)
    assert cancelled.status == TransactionStatus.CANCELLED

    connectivity.online = True
    with pytest.raises(TransitionNotAllowedError):
        await coordinator.sync(intent.id)

    assert gateway.calls == []
    assert (await local_store.get(intent.id)).status == TransactionStatus.CANCELLED
    assert await balance_of(alice.owner_id) == Decimal("1000.00")


@pytest.mark.asyncio
async def test_cancel_is_mirrored_to_server(coordinator, gateway, server, alice):
    gateway.fail_before["execute"] = RemoteUnavailableError("refused", "connection_error")
    intent = await coordinator.create("bob@example.com", "100")

    await coordinator.cancel(intent.id)

    assert gateway.count("cancel") == 1
    remote = await server.run(lambda ex: ex.list(alice.owner_id))
    assert remote[0].status == TransactionStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_never_raises_when_mirroring_fails(coordinator, gateway, local_store):
    gateway.fail_before["execute"] = RemoteUnavailableError("refused", "connection_error")
    intent = await coordinator.create("bob@example.com", "100")
    gateway.fail_before["cancel"] = RemoteUnavailableError("refused", "connection_error")

    cancelled = await coordinator.cancel(intent.id)

    assert cancelled.status == TransactionStatus.CANCELLED
    assert (await local_store.get(intent.id)).status == TransactionStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_of_id_server_never_saw_is_local_only(coordinator, gateway):
    gateway.fail_before["create"] = RemoteUnavailableError("refused", "connection_error")
    intent = await coordinator.create("bob@example.com", "100")

    cancelled = await coordinator.cancel(intent.id)

    assert cancelled.status == TransactionStatus.CANCELLED
    assert gateway.count("cancel") == 1


@pytest.mark.asyncio
async def test_cancel_of_settled_transaction_rejected(coordinator, gateway):
    intent = await coordinator.create("bob@example.com", "100")

    with pytest.raises(TransitionNotAllowedError):
        await coordinator.cancel(intent.id)
    assert gateway.count("cancel") == 0


@pytest.mark.asyncio
async def test_server_outcome_prevails_over_late_local_cancel(coordinator, gateway):
    gateway.drop_after.add("execute")
    intent = await coordinator.create("bob@example.com", "100")
    gateway.drop_after.clear()

    await coordinator.cancel(intent.id)
    history = await coordinator.history()

    assert [t.status for t in history] == [TransactionStatus.SUCCESS]


# ─── history ─────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_history_merges_server_and_local_only(coordinator, connectivity):
    settled = await coordinator.create("bob@example.com", "10")
    rejected = await coordinator.create("bob@example.com", "5000")
    connectivity.online = False
    queued = await coordinator.create("bob@example.com", "20")
    connectivity.online = True

    history = await coordinator.history()

    assert [t.id for t in history] == [queued.id, rejected.id, settled.id]
    assert [t.status for t in history] == [
        TransactionStatus.PENDING, TransactionStatus.FAILED, TransactionStatus.SUCCESS,
    ]


@pytest.mark.asyncio
async def test_history_pages_through_server(coordinator, gateway):
    created = [await coordinator.create("bob@example.com", str(n)) for n in (1, 2, 3)]

    history = await coordinator.history()

    assert [t.id for t in history] == [t.id for t in reversed(created)]
    assert gateway.count("list") == 2


@pytest.mark.asyncio
async def test_history_falls_back_to_local_when_server_fails(coordinator, gateway):
    intent = await coordinator.create("bob@example.com", "10")
    gateway.fail_before["list"] = RemoteUnavailableError("boom", "server_error")

    history = await coordinator.history()

    assert [t.id for t in history] == [intent.id]


@pytest.mark.asyncio
async def test_history_falls_back_to_local_when_page_request_rejected(coordinator, gateway):
    intent = await coordinator.create("bob@example.com", "10")
    gateway.fail_before["list"] = TransferValidationError("Invalid request data", "limit")

    history = await coordinator.history()

    assert [t.id for t in history] == [intent.id]
    assert gateway.count("list") == 1


@pytest.mark.asyncio
async def test_history_offline_serves_local(coordinator, connectivity, gateway):
    connectivity.online = False
    intent = await coordinator.create("bob@example.com", "10")

    history = await coordinator.history()

    assert [t.id for t in history] == [intent.id]
    assert gateway.count("list") == 0


@pytest.mark.asyncio
async def test_history_writes_back_server_outcomes(coordinator, gateway, local_store):
    gateway.drop_after.add("execute")
    intent = await coordinator.create("bob@example.com", "100")
    gateway.drop_after.clear()
    assert (await local_store.get(intent.id)).status == TransactionStatus.PENDING

    history = await coordinator.history()

    assert history[0].status == TransactionStatus.SUCCESS
    assert (await local_store.get(intent.id)).status == TransactionStatus.SUCCESS


@pytest.mark.asyncio
async def test_history_of_other_owner_rejected(coordinator, bob):
    with pytest.raises(TransferValidationError):
        await coordinator.history(bob.owner_id)


# ─── wipe ────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_clear_local_data(coordinator, connectivity, local_store, alice):
    connectivity.online = False
    await coordinator.create("bob@example.com", "10")
    await coordinator.create("bob@example.com", "20")

    assert await coordinator.clear_local_data() == 2
    assert await local_store.list_all(alice.owner_id) == []
