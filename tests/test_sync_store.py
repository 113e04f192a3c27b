import asyncio
import logging
import threading

import pytest

from conftest import FakeRemote
from finledger.db.cache import LocalCache
from finledger.db.remote import Collection
from finledger.db.sync_store import CACHE, REMOTE, SyncStore, is_local_id

TX = Collection.TRANSACTIONS
SV = Collection.SAVINGS

salary = {"_id": "r100", "type": "income", "title": "Salary", "amount": 5000, "date": "2025-03-01T00:00:00Z"}
rd_plan = {"_id": "s1", "type": "rd", "name": "RD", "rdMonthly": 1000, "rdMonths": 12, "entries": []}


@pytest.mark.asyncio
async def test_remote_read_replaces_cache(store, remote, cache):
    remote.data[TX] = [salary]
    snapshot = await store.fetch_collection(TX)
    assert snapshot.source == REMOTE
    assert snapshot.records == [salary]
    assert cache.get_snapshot(TX) == [salary]


@pytest.mark.asyncio
async def test_failed_read_serves_cache(store, remote, cache):
    cache.put_snapshot(TX, [salary])
    remote.go_offline()
    snapshot = await store.fetch_collection(TX)
    assert snapshot.from_cache
    assert snapshot.records == [salary]


@pytest.mark.asyncio
async def test_offline_create_is_visible_in_next_read(store, remote, cache):
    cache.put_snapshot(TX, [salary])
    remote.go_offline()

    result = await store.create_record(TX, {"type": "expense", "title": "Tea", "amount": 3})
    assert result.synced is False
    assert is_local_id(result.record_id)
    assert result.snapshot.source == CACHE
    assert [r["_id"] for r in result.snapshot.records] == ["r100", result.record_id]

    again = await store.fetch_collection(TX)
    assert [r["title"] for r in again.records] == ["Salary", "Tea"]


@pytest.mark.asyncio
async def test_online_create_refetches_collection(store, remote):
    result = await store.create_record(TX, {"type": "income", "amount": 10})
    assert result.synced is True
    assert result.snapshot.source == REMOTE
    assert result.record == {"type": "income", "amount": 10, "_id": "r1"}
    assert remote.calls[-2:] == [("create", TX), ("list", TX)]


@pytest.mark.asyncio
async def test_fetch_wins_over_unsynced_local_records(store, remote, caplog):
    remote.go_offline()
    created = await store.create_record(TX, {"type": "expense", "amount": 1})
    remote.go_online()
    remote.data[TX] = [salary]

    with caplog.at_level(logging.WARNING, logger="finledger.db.sync_store"):
        snapshot = await store.fetch_collection(TX)

    assert snapshot.records == [salary]
    assert created.record_id in caplog.text


@pytest.mark.asyncio
async def test_joint_fetch_is_all_or_nothing(store, remote, cache):
    cache.put_snapshot(TX, [{"_id": "old-tx"}])
    cache.put_snapshot(SV, [{"_id": "old-sv"}])
    remote.data[TX] = [salary]
    remote.data[SV] = [rd_plan]
    remote.failing = {SV}

    snapshots = await store.fetch_joint([TX, SV])
    assert all(s.source == CACHE for s in snapshots.values())
    assert snapshots[TX].records == [{"_id": "old-tx"}]
    # the leg that succeeded must not overwrite its cache blob either
    assert cache.get_snapshot(TX) == [{"_id": "old-tx"}]

    remote.failing = set()
    snapshots = await store.fetch_joint([TX, SV])
    assert all(s.source == REMOTE for s in snapshots.values())
    assert cache.get_snapshot(SV) == [rd_plan]


@pytest.mark.asyncio
async def test_joint_fetch_propagates_programming_errors(store, remote, monkeypatch):
    def broken(kind):
        raise KeyError(kind)

    monkeypatch.setattr(remote, "list_records", broken)
    with pytest.raises(KeyError):
        await store.fetch_joint([TX, SV])


@pytest.mark.asyncio
async def test_offline_update_delete_and_append_patch_cache(store, remote, cache):
    cache.put_snapshot(SV, [rd_plan, {"_id": "s2", "type": "saving", "amount": 50}])
    remote.go_offline()

    updated = await store.update_record(SV, "s1", {"name": "Renamed"})
    assert updated.synced is False
    assert updated.record["name"] == "Renamed"

    appended = await store.append_sub_record(SV, "s1", "entries", {"amount": 1000, "date": "2025-03-01"})
    assert appended.record["entries"] == [{"amount": 1000, "date": "2025-03-01"}]

    deleted = await store.delete_record(SV, "s2")
    assert [r["_id"] for r in deleted.snapshot.records] == ["s1"]

    missing = await store.update_record(SV, "nope", {"name": "x"})
    assert missing.record is None


@pytest.mark.asyncio
async def test_leaderboard_and_probe_report_failures(store, remote):
    assert await store.fetch_leaderboard() is None
    assert await store.probe() is None

    remote.leaderboard_rows = [{"name": "Asha", "savings": 10}]
    assert await store.fetch_leaderboard() == [{"name": "Asha", "savings": 10}]

    remote.go_offline()
    assert "unreachable" in await store.probe()


@pytest.mark.asyncio
async def test_cache_survives_restart(tmp_path):
    path = tmp_path / "cache.json"
    remote = FakeRemote({TX: [salary]})
    store = SyncStore(remote, LocalCache(path))
    await store.fetch_collection(TX)
    store.save_budget({"monthly": 900, "auto": False})

    reloaded = LocalCache(path)
    assert reloaded.get_snapshot(TX) == [salary]
    assert reloaded.get_budget() == {"monthly": 900, "auto": False}


def test_unreadable_cache_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    cache = LocalCache(path)
    assert cache.get_snapshot(TX) == []
    assert cache.get_budget() is None


def test_unwritable_cache_file_keeps_serving_from_memory(tmp_path, caplog):
    # the path is a directory, so every write fails
    cache = LocalCache(tmp_path)
    with caplog.at_level(logging.WARNING, logger="finledger.db.cache"):
        cache.put_snapshot(TX, [salary])
        cache.put_budget({"monthly": 100, "auto": False})
    assert cache.get_snapshot(TX) == [salary]
    assert cache.get_budget() == {"monthly": 100, "auto": False}
    assert "Could not write cache file" in caplog.text


@pytest.mark.asyncio
async def test_non_record_items_are_dropped(store, remote, cache):
    remote.data[TX] = ["garbage", None, salary]
    snapshot = await store.fetch_collection(TX)
    assert snapshot.records == [salary]
    assert cache.get_snapshot(TX) == [salary]

    remote.data[TX] = []
    snapshot = await store.fetch_collection(TX)
    assert snapshot.records == []
    assert cache.get_snapshot(TX) == []


@pytest.mark.asyncio
async def test_non_record_items_in_cache_are_ignored(store, remote, cache):
    # written by hand or by an older build
    cache._data["last_tx_v1"] = ["garbage", None, salary]
    assert cache.get_snapshot(TX) == [salary]

    remote.go_offline()
    result = await store.update_record(TX, "r100", {"amount": 10})
    assert result.synced is False
    assert result.record["amount"] == 10

    remote.go_online()
    remote.data[TX] = []
    assert (await store.fetch_collection(TX)).records == []


@pytest.mark.asyncio
async def test_slow_older_read_does_not_roll_back_cache(store, remote, cache, monkeypatch):
    rent = {"_id": "r101", "type": "expense", "title": "Rent", "amount": 1500, "date": "2025-03-02T00:00:00Z"}
    remote.data[TX] = [salary]
    original = remote.list_records
    entered = threading.Event()
    release = threading.Event()
    held = []

    def slow_first(kind):
        records = original(kind)
        if not held:
            held.append(kind)
            entered.set()
            release.wait(5)
        return records

    monkeypatch.setattr(remote, "list_records", slow_first)

    older = asyncio.ensure_future(store.fetch_collection(TX))
    await asyncio.to_thread(entered.wait, 5)

    remote.data[TX] = [salary, rent]
    newer = await store.fetch_collection(TX)
    assert [r["_id"] for r in newer.records] == ["r100", "r101"]

    release.set()
    stale = await older
    assert [r["_id"] for r in stale.records] == ["r100"]
    assert [r["_id"] for r in cache.get_snapshot(TX)] == ["r100", "r101"]

    remote.go_offline()
    fallback = await store.fetch_collection(TX)
    assert fallback.from_cache
    assert [r["_id"] for r in fallback.records] == ["r100", "r101"]
