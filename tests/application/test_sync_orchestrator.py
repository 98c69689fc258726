from __future__ import annotations

import asyncio

from finexa.application.sync_orchestrator import SyncOrchestrator
from finexa.domain.sync_errors import RemotePermissionError, RemoteUnavailableError
from finexa.domain.sync_models import SyncContext

CONTEXT = SyncContext(owner_id="u1", is_cloud_mode=True)


def _remote_customer(record_id: str, name: str, synced_at: str = "2024-06-01T00:00:00Z") -> dict:
    return {
        "id": record_id,
        "name": name,
        "email": "",
        "state": "KA",
        "user_id": "u1",
        "created_at": "2024-01-01T00:00:00Z",
        "synced_at": synced_at,
    }


def test_scenario_first_sync_pushes_local_customer(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme", "createdAt": "2024-01-01T00:00:00Z"}])

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is True
    pushed = remote.table("customers").upsert_calls[0]
    assert len(pushed) == 1
    row = pushed[0]
    assert row["id"] == "c1"
    assert row["user_id"] == "u1"
    assert row["name"] == "Acme"
    assert row["created_at"] == "2024-01-01T00:00:00Z"
    assert row["synced_at"]
    local = store.get("customers")
    assert local[0]["synced_at"] == row["synced_at"]
    assert orchestrator.calculate_pending_changes() == 0
    assert status.state.status == "online"
    assert status.state.pending_changes == 0
    assert status.state.last_synced is not None


def test_not_ready_without_cloud_mode_or_owner(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])

    for context in (SyncContext("u1", False), SyncContext(None, True), SyncContext("", True)):
        result = asyncio.run(orchestrator.run_cycle(context))
        assert result.success is False
        assert result.error == "Not ready to sync"

    assert remote.tables == {}
    assert status.state.status == "offline"


def test_not_ready_without_remote_store(store, status, clock) -> None:
    orchestrator = SyncOrchestrator(store, status, None, clock=clock)

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.error == "Not ready to sync"


def test_busy_guard_rejects_second_trigger_without_touching_first(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])
    remote.table("customers").yield_on_select = True

    async def run_both():
        return await asyncio.gather(orchestrator.run_cycle(CONTEXT), orchestrator.run_cycle(CONTEXT))

    first, second = asyncio.run(run_both())

    assert first.success is True
    assert second.success is False
    assert second.error == "Not ready to sync"
    assert len(remote.table("customers").upsert_calls) == 1
    assert status.state.status == "online"
    assert orchestrator.is_busy is False


def test_pending_count_spans_syncable_datasets_only(store, orchestrator) -> None:
    store.set("customers", [{"id": "c1"}, {"id": "c2", "synced_at": "t1"}])
    store.set("products", [{"id": "p1", "last_synced_at": "t0"}])
    store.set("ledgerEntries", [{"id": "l1"}])
    store.set("invoices", [{"id": "i1"}, {"id": "i2"}])

    assert orchestrator.calculate_pending_changes() == 3


def test_pending_count_ignores_corrupt_datasets(store, orchestrator) -> None:
    store.set("customers", {"not": "a list"})

    assert orchestrator.calculate_pending_changes() == 0


def test_second_cycle_does_not_push_synced_records_again(store, remote, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])

    asyncio.run(orchestrator.run_cycle(CONTEXT))
    second = asyncio.run(orchestrator.run_cycle(CONTEXT))

    table = remote.table("customers")
    assert second.success is True
    assert len(table.upsert_calls) == 1
    assert list(table.rows) == ["c1"]


def test_forced_re_push_does_not_duplicate_remote_rows(store, remote, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])
    asyncio.run(orchestrator.run_cycle(CONTEXT))

    local = store.get("customers")
    local[0].pop("synced_at")
    local[0]["name"] = "Acme Ltd"
    store.set("customers", local)
    remote.table("customers").select_error = RemoteUnavailableError("timeout")

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    table = remote.table("customers")
    assert result.success is False
    assert len(table.upsert_calls) == 2
    assert list(table.rows) == ["c1"]
    assert table.rows["c1"]["name"] == "Acme Ltd"


def test_pull_overwrites_local_edits_with_remote_version(store, remote, orchestrator) -> None:
    store.set(
        "customers",
        [{"id": "c1", "name": "Local edit", "user_id": "u1", "last_synced_at": "2024-05-01T00:00:00Z"}],
    )
    remote.table("customers").rows["c1"] = _remote_customer("c1", "Remote version")

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    local = store.get("customers")
    assert result.success is True
    assert local[0]["name"] == "Remote version"
    assert local[0]["synced_at"] == "2024-06-01T00:00:00Z"
    assert remote.table("customers").upsert_calls == []


def test_pull_only_reads_rows_of_the_owner(store, remote, orchestrator) -> None:
    remote.table("customers").rows["c1"] = _remote_customer("c1", "Mine")
    remote.table("customers").rows["c2"] = {**_remote_customer("c2", "Theirs"), "user_id": "u2"}

    asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert [record["id"] for record in store.get("customers")] == ["c1"]


def test_empty_remote_keeps_unsynced_local_data(store, remote, orchestrator) -> None:
    store.set("products", [{"id": "p1", "name": "Widget", "price": 10}])

    asyncio.run(orchestrator.run_cycle(CONTEXT))

    products = store.get("products")
    assert len(products) == 1
    assert products[0]["name"] == "Widget"
    assert products[0]["synced_at"]


def test_failed_pull_is_isolated_to_its_dataset(store, remote, status, orchestrator) -> None:
    remote.table("customers").rows["c1"] = _remote_customer("c1", "Acme")
    remote.table("ledger_entries").rows["l1"] = {
        "id": "l1",
        "entry_date": "2025-01-01",
        "entry_type": "income",
        "category": "sales",
        "amount": "100",
        "user_id": "u1",
        "created_at": "t0",
        "synced_at": "t1",
    }
    remote.table("products").select_error = RemotePermissionError("denied")

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is False
    assert "products (pull): denied" in result.error
    assert store.get("customers")[0]["name"] == "Acme"
    assert store.get("ledgerEntries")[0]["amount"] == 100.0
    assert status.state.status == "error"
    assert status.state.error == result.error
    failed = [(item.dataset, item.phase) for item in result.report.failures]
    assert failed == [("products", "pull")]


def test_failed_push_leaves_records_pending_and_continues(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])
    store.set("suppliers", [{"id": "s1", "name": "Parts"}])
    remote.table("customers").upsert_error = RemoteUnavailableError("offline")

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is False
    assert "customers (push)" in result.error
    assert "synced_at" not in store.get("customers")[0]
    assert store.get("suppliers")[0]["synced_at"]
    assert status.state.pending_changes == 1


def test_record_edited_during_upsert_stays_pending(store, remote, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}, {"id": "c2", "name": "Beta"}])

    def edit_while_pushing() -> None:
        records = store.get("customers")
        records[0]["name"] = "Acme (edited)"
        records.append({"id": "c3", "name": "Gamma"})
        store.set("customers", records)

    remote.table("customers").before_upsert = edit_while_pushing

    asyncio.run(orchestrator.run_cycle(CONTEXT))

    by_id = {record["id"]: record for record in store.get("customers")}
    assert "synced_at" not in by_id["c1"]
    assert by_id["c1"]["name"] == "Acme (edited)"
    assert by_id["c2"]["synced_at"]
    assert "synced_at" not in by_id["c3"]
    assert orchestrator.calculate_pending_changes() == 2


def test_one_timestamp_per_pushed_batch(store, remote, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "A"}, {"id": "c2", "name": "B"}])

    asyncio.run(orchestrator.run_cycle(CONTEXT))

    stamps = {row["synced_at"] for row in remote.table("customers").upsert_calls[0]}
    assert len(stamps) == 1


def test_leaving_cloud_mode_mid_cycle_does_not_raise(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])
    remote.table("customers").before_upsert = lambda: status.force_offline()

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is True
    assert status.state.status == "offline"


def test_unexpected_exception_is_isolated_to_its_dataset(store, remote, status, orchestrator) -> None:
    store.set("customers", [{"id": "c1", "name": "Acme"}])
    store.set("ledgerEntries", [{"id": "l1", "date": "2025-01-02", "type": "income", "category": "Sales", "amount": 10}])
    remote.table("customers").select_error = RuntimeError("driver bug")

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is False
    assert "customers (pull): driver bug" in result.error
    outcomes = {(item.dataset, item.phase): item.ok for item in result.report.outcomes}
    assert outcomes[("ledgerEntries", "pull")] is True
    assert outcomes[("customers", "push")] is True
    assert outcomes[("ledgerEntries", "push")] is True
    assert status.state.status == "error"
    assert orchestrator.is_busy is False


def test_overflowing_remote_number_does_not_stop_other_datasets(store, remote, orchestrator) -> None:
    remote.table("products").rows["p1"] = {
        "id": "p1",
        "name": "Bolt",
        "quantity": "1e400",
        "user_id": "u1",
        "synced_at": "2024-06-01T00:00:00Z",
    }
    store.set("ledgerEntries", [{"id": "l1", "date": "2025-01-02", "type": "expense", "category": "Rent", "amount": 50}])

    result = asyncio.run(orchestrator.run_cycle(CONTEXT))

    assert result.success is True
    assert store.get("products")[0]["quantity"] == 0
    assert [row["id"] for row in remote.table("ledger_entries").upsert_calls[0]] == ["l1"]
    assert store.get("ledgerEntries")[0]["synced_at"]
