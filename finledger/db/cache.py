"""Local fallback snapshot cache (JSON blobs). Never canonical while the remote answers."""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from finledger.db.remote import Collection

logger = logging.getLogger(__name__)

SNAPSHOT_KEYS = {
    Collection.TRANSACTIONS: "last_tx_v1",
    Collection.SAVINGS: "last_sv_v1",
    Collection.NOTES: "last_notes_v1",
}
BUDGET_KEY = "budget_v1"


class LocalCache:
    """
    Holds the last-known-good snapshot per collection plus the budget policy.
    With no path the cache lives in memory only.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path else None
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable cache file %s: %s", self._path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return data

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("w", encoding="utf-8") as handle:
                json.dump(self._data, handle, indent=2, sort_keys=True, default=str)
        except OSError as e:
            # the in-memory copy stays authoritative for this process
            logger.warning("Could not write cache file %s: %s", self._path, e)

    def get_snapshot(self, kind: Collection) -> List[Dict[str, Any]]:
        records = self._data.get(SNAPSHOT_KEYS[kind])
        if not isinstance(records, list):
            return []
        return [copy.deepcopy(r) for r in records if isinstance(r, dict)]

    def put_snapshot(self, kind: Collection, records: List[Dict[str, Any]]) -> None:
        self._data[SNAPSHOT_KEYS[kind]] = copy.deepcopy(records)
        self._save()

    def get_budget(self) -> Optional[Dict[str, Any]]:
        budget = self._data.get(BUDGET_KEY)
        return dict(budget) if isinstance(budget, dict) else None

    def put_budget(self, budget: Dict[str, Any]) -> None:
        self._data[BUDGET_KEY] = dict(budget)
        self._save()
