import copy
from datetime import timezone

import pytest

from finledger.core.errors import TransportError
from finledger.db.cache import LocalCache
from finledger.db.remote import Collection
from finledger.db.sync_store import SyncStore
from finledger.utils.aggregation import AggregationEngine
from finledger.utils.analytics import AnalyticsEngine
from finledger.utils.dashboard import Dashboard
from finledger.utils.notifications import NotificationBus
from finledger.utils.savings_scheduler import SavingsScheduler


class FakeRemote:
    """In-memory remote collection service with switchable failures."""

    def __init__(self, data=None, leaderboard_rows=None):
        self.data = {kind: [] for kind in Collection}
        for kind, records in (data or {}).items():
            self.data[kind] = copy.deepcopy(records)
        self.leaderboard_rows = leaderboard_rows
        self.failing = set()
        self.fail_writes = False
        self.calls = []
        self._next_id = 1

    def go_offline(self):
        self.failing = set(Collection)
        self.fail_writes = True

    def go_online(self):
        self.failing = set()
        self.fail_writes = False

    def _read(self, kind):
        self.calls.append(("list", kind))
        if kind in self.failing:
            raise TransportError(f"{kind.value} unreachable")

    def _write(self, op, kind):
        self.calls.append((op, kind))
        if self.fail_writes:
            raise TransportError(f"{op} {kind.value} unreachable")

    def list_records(self, kind):
        self._read(kind)
        return copy.deepcopy(self.data[kind])

    def create_record(self, kind, payload):
        self._write("create", kind)
        record = {**payload, "_id": f"r{self._next_id}"}
        self._next_id += 1
        self.data[kind].append(record)
        return copy.deepcopy(record)

    def update_record(self, kind, record_id, payload):
        self._write("update", kind)
        for idx, record in enumerate(self.data[kind]):
            if record["_id"] == record_id:
                self.data[kind][idx] = {**record, **payload, "_id": record_id}
                return copy.deepcopy(self.data[kind][idx])
        return None

    def delete_record(self, kind, record_id):
        self._write("delete", kind)
        self.data[kind] = [r for r in self.data[kind] if r["_id"] != record_id]

    def append_sub_record(self, kind, record_id, field, payload):
        self._write("append", kind)
        for record in self.data[kind]:
            if record["_id"] == record_id:
                record[field] = [*(record.get(field) or []), payload]
                return copy.deepcopy(record)
        return None

    def leaderboard(self):
        if self.leaderboard_rows is None:
            raise TransportError("no leaderboard")
        return copy.deepcopy(self.leaderboard_rows)


def build_dashboard(remote, cache=None, zone=timezone.utc):
    aggregation = AggregationEngine(zone)
    return Dashboard(
        store=SyncStore(remote, cache or LocalCache()),
        savings=SavingsScheduler(annual_rate=0.05, zone=zone),
        aggregation=aggregation,
        analytics=AnalyticsEngine(aggregation),
        notifications=NotificationBus(),
    )


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def cache():
    return LocalCache()


@pytest.fixture
def store(remote, cache):
    return SyncStore(remote, cache)
