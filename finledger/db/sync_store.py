"""
SyncStore
Dual-write / dual-read persistence over a remote collection service and the
local fallback cache.

Reads are fully remote or fully cached, never mixed. A successful remote read
replaces the cached snapshot wholesale ("fetch wins"): local-only records the
remote has not accepted are dropped at that point, and the drop is logged.
Writes try the remote first and patch the cache when it fails; every write
ends with a full refetch of the affected collection.

Every remote read takes a ticket when it is issued. A response only replaces
the cached snapshot when its ticket is newer than the one that last did, so a
slow, older read cannot roll the fallback cache back.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence
from uuid import uuid4

from finledger.core.errors import TransportError
from finledger.db.cache import LocalCache
from finledger.db.remote import Collection

logger = logging.getLogger(__name__)

REMOTE = "remote"
CACHE = "cache"
LOCAL_ID_PREFIX = "local-"


def is_local_id(record_id: Any) -> bool:
    return isinstance(record_id, str) and record_id.startswith(LOCAL_ID_PREFIX)


class CollectionClient(Protocol):
    def list_records(self, kind: Collection) -> List[Dict[str, Any]]: ...
    def create_record(self, kind: Collection, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...
    def update_record(self, kind: Collection, record_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...
    def delete_record(self, kind: Collection, record_id: str) -> None: ...
    def append_sub_record(self, kind: Collection, record_id: str, field: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...
    def leaderboard(self) -> List[Dict[str, Any]]: ...


@dataclass
class Snapshot:
    kind: Collection
    records: List[Dict[str, Any]]
    source: str

    @property
    def from_cache(self) -> bool:
        return self.source == CACHE


@dataclass
class MutationResult:
    snapshot: Snapshot
    synced: bool
    record: Optional[Dict[str, Any]] = None
    record_id: Optional[str] = None


class SyncStore:
    def __init__(self, remote: CollectionClient, cache: LocalCache) -> None:
        self._remote = remote
        self._cache = cache
        self._tickets = itertools.count(1)
        self._written: Dict[Collection, int] = {}

    async def _call(self, fn, *args):
        # remote adapters are blocking; keep the event loop free
        return await asyncio.to_thread(fn, *args)

    # Reads

    async def fetch_collection(self, kind: Collection) -> Snapshot:
        ticket = next(self._tickets)
        try:
            records = await self._call(self._remote.list_records, kind)
        except TransportError as e:
            logger.warning("Fetching %s failed, serving cached snapshot: %s", kind.value, e)
            return Snapshot(kind, self._cache.get_snapshot(kind), CACHE)
        records = self._replace_snapshot(kind, records, ticket)
        return Snapshot(kind, records, REMOTE)

    async def fetch_joint(self, kinds: Sequence[Collection]) -> Dict[Collection, Snapshot]:
        """
        Fetch several collections as one operation. If any leg fails, every
        collection is served from cache and no cached snapshot is replaced.
        """
        ticket = next(self._tickets)
        results = await asyncio.gather(
            *(self._call(self._remote.list_records, kind) for kind in kinds),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            if not isinstance(failure, TransportError):
                raise failure

        if failures:
            logger.warning(
                "Joint fetch of %s failed (%s), serving all from cache",
                ", ".join(k.value for k in kinds),
                "; ".join(str(f) for f in failures),
            )
            return {kind: Snapshot(kind, self._cache.get_snapshot(kind), CACHE) for kind in kinds}

        snapshots = {}
        for kind, records in zip(kinds, results):
            snapshots[kind] = Snapshot(kind, self._replace_snapshot(kind, records, ticket), REMOTE)
        return snapshots

    async def fetch_leaderboard(self) -> Optional[List[Dict[str, Any]]]:
        """Remote leaderboard, or None when unavailable."""
        try:
            return await self._call(self._remote.leaderboard)
        except TransportError as e:
            logger.info("Remote leaderboard unavailable: %s", e)
            return None

    async def probe(self) -> Optional[str]:
        """Check remote reachability without touching the cache. Returns the failure, if any."""
        try:
            await self._call(self._remote.list_records, Collection.TRANSACTIONS)
        except TransportError as e:
            return str(e)
        return None

    def _replace_snapshot(self, kind: Collection, records: Any, ticket: int) -> List[Dict[str, Any]]:
        """Cache a remote read unless a newer one already landed. Returns the usable records."""
        if not isinstance(records, list):
            logger.warning("Remote %s listing is not a list (%s), treating as empty", kind.value, type(records).__name__)
            records = []
        usable = [r for r in records if isinstance(r, dict)]
        if len(usable) != len(records):
            logger.warning("Dropping %d non-record item(s) from remote %s", len(records) - len(usable), kind.value)

        if ticket <= self._written.get(kind, 0):
            logger.info(
                "Read #%d of %s landed after #%d, leaving cache as is",
                ticket,
                kind.value,
                self._written[kind],
            )
            return usable
        self._written[kind] = ticket

        remote_ids = {r.get("_id") for r in usable}
        discarded = [
            r.get("_id")
            for r in self._cache.get_snapshot(kind)
            if is_local_id(r.get("_id")) and r.get("_id") not in remote_ids
        ]
        if discarded:
            logger.warning(
                "Remote %s snapshot replaces cache; discarding %d unsynced local record(s): %s",
                kind.value,
                len(discarded),
                ", ".join(discarded),
            )
        self._cache.put_snapshot(kind, usable)
        return usable

    # Writes

    async def create_record(self, kind: Collection, payload: Dict[str, Any]) -> MutationResult:
        try:
            created = await self._call(self._remote.create_record, kind, payload)
            synced = True
        except TransportError as e:
            logger.warning("Creating %s record failed, caching locally: %s", kind.value, e)
            created = {**payload, "_id": f"{LOCAL_ID_PREFIX}{uuid4().hex}"}
            records = self._cache.get_snapshot(kind)
            records.append(created)
            self._cache.put_snapshot(kind, records)
            synced = False

        record_id = created.get("_id") if isinstance(created, dict) else None
        snapshot = await self.fetch_collection(kind)
        return MutationResult(snapshot, synced, _find(snapshot.records, record_id) or created, record_id)

    async def update_record(self, kind: Collection, record_id: str, payload: Dict[str, Any]) -> MutationResult:
        try:
            await self._call(self._remote.update_record, kind, record_id, payload)
            synced = True
        except TransportError as e:
            logger.warning("Updating %s/%s failed, patching cache: %s", kind.value, record_id, e)
            self._patch_cached(kind, record_id, lambda record: {**record, **payload, "_id": record_id})
            synced = False

        snapshot = await self.fetch_collection(kind)
        return MutationResult(snapshot, synced, _find(snapshot.records, record_id), record_id)

    async def delete_record(self, kind: Collection, record_id: str) -> MutationResult:
        try:
            await self._call(self._remote.delete_record, kind, record_id)
            synced = True
        except TransportError as e:
            logger.warning("Deleting %s/%s failed, removing from cache: %s", kind.value, record_id, e)
            records = self._cache.get_snapshot(kind)
            self._cache.put_snapshot(kind, [r for r in records if r.get("_id") != record_id])
            synced = False

        snapshot = await self.fetch_collection(kind)
        return MutationResult(snapshot, synced, None, record_id)

    async def append_sub_record(
        self,
        kind: Collection,
        record_id: str,
        field_name: str,
        payload: Dict[str, Any],
    ) -> MutationResult:
        try:
            await self._call(self._remote.append_sub_record, kind, record_id, field_name, payload)
            synced = True
        except TransportError as e:
            logger.warning("Appending to %s/%s.%s failed, patching cache: %s", kind.value, record_id, field_name, e)

            def append(record):
                return {**record, field_name: [*(record.get(field_name) or []), payload]}

            self._patch_cached(kind, record_id, append)
            synced = False

        snapshot = await self.fetch_collection(kind)
        return MutationResult(snapshot, synced, _find(snapshot.records, record_id), record_id)

    def _patch_cached(self, kind: Collection, record_id: str, patch) -> bool:
        records = self._cache.get_snapshot(kind)
        patched = False
        for idx, record in enumerate(records):
            if record.get("_id") == record_id:
                records[idx] = patch(record)
                patched = True
        if not patched:
            logger.warning("No cached %s record %s to patch", kind.value, record_id)
            return False
        self._cache.put_snapshot(kind, records)
        return True

    # Budget policy (local only)

    def load_budget(self) -> Optional[Dict[str, Any]]:
        return self._cache.get_budget()

    def save_budget(self, budget: Dict[str, Any]) -> None:
        self._cache.put_budget(budget)

    def describe_remote(self) -> Dict[str, Any]:
        describe = getattr(self._remote, "describe", None)
        return describe() if describe else {"backend": type(self._remote).__name__}


def _find(records: List[Dict[str, Any]], record_id: Optional[str]) -> Optional[Dict[str, Any]]:
    if record_id is None:
        return None
    for record in records:
        if record.get("_id") == record_id:
            return record
    return None
