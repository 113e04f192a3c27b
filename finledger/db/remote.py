"""
Remote collection service over HTTP.

Talks to the ledger API contract:
  GET/POST            {prefix}/transactions
  GET/POST/PUT/DELETE {prefix}/savings, POST {prefix}/savings/{id}/add-month
  GET/POST/PUT/DELETE {prefix}/notes
  GET                 {prefix}/leaderboard (optional)

Every network problem or non-2xx answer is raised as TransportError; the
SyncStore decides what to do with it.
"""
import logging
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from finledger.core.errors import TransportError

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    TRANSACTIONS = "transactions"
    SAVINGS = "savings"
    NOTES = "notes"


# sub-record field -> route segment
SUB_RECORD_ROUTES = {
    "entries": "add-month",
}


class HttpCollectionClient:
    def __init__(
        self,
        base_url: str,
        prefix: str = "/api",
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base = base_url.rstrip("/") + "/" + prefix.strip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    def _url(self, *parts: str) -> str:
        return "/".join([self._base, *(str(p).strip("/") for p in parts)])

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(f"{method} {url} returned a non-JSON body") from e

    def list_records(self, kind: Collection) -> List[Dict[str, Any]]:
        url = self._url(kind.value)
        data = self._request("GET", url)
        if data is None:
            return []
        if not isinstance(data, list):
            raise TransportError(f"GET {url} returned {type(data).__name__}, expected a list")
        return data

    def create_record(self, kind: Collection, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("POST", self._url(kind.value), json=payload)

    def update_record(self, kind: Collection, record_id: str, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._request("PUT", self._url(kind.value, record_id), json=payload)

    def delete_record(self, kind: Collection, record_id: str) -> None:
        self._request("DELETE", self._url(kind.value, record_id))

    def append_sub_record(
        self,
        kind: Collection,
        record_id: str,
        field: str,
        payload: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        route = SUB_RECORD_ROUTES.get(field)
        if route is None:
            raise ValueError(f"No sub-record route for field {field!r}")
        return self._request("POST", self._url(kind.value, record_id, route), json=payload)

    def leaderboard(self) -> List[Dict[str, Any]]:
        url = self._url("leaderboard")
        data = self._request("GET", url)
        if not isinstance(data, list):
            raise TransportError(f"GET {url} did not return a leaderboard list")
        return data

    def describe(self) -> Dict[str, Any]:
        return {"backend": "http", "base_url": self._base, "timeout": self._timeout}
