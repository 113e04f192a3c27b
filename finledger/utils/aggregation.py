from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from finledger.core.clock import localize
from finledger.models.transaction import Transaction, TransactionKind


class Granularity(str, Enum):
    DAY = "day"
    MONTH = "month"
    YEAR = "year"


_KEY_FORMATS = {
    Granularity.DAY: "%Y-%m-%d",
    Granularity.MONTH: "%Y-%m",
    Granularity.YEAR: "%Y",
}


@dataclass
class Bucket:
    """Income/expense sums for one calendar key. Savings is derived, never stored."""

    key: str
    income: float = 0.0
    expense: float = 0.0
    transaction_count: int = 0

    @property
    def savings(self) -> float:
        return self.income - self.expense

    def add(self, transaction: Transaction) -> None:
        if transaction.kind == TransactionKind.INCOME:
            self.income += transaction.amount
        else:
            self.expense += transaction.amount
        self.transaction_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "income": round(self.income, 2),
            "expense": round(self.expense, 2),
            "savings": round(self.savings, 2),
            "transaction_count": self.transaction_count,
        }


@dataclass
class Totals:
    income: float = 0.0
    expense: float = 0.0

    @property
    def balance(self) -> float:
        return self.income - self.expense

    def to_dict(self) -> Dict[str, float]:
        return {
            "income": round(self.income, 2),
            "expense": round(self.expense, 2),
            "balance": round(self.balance, 2),
        }


@dataclass
class Page:
    items: List[Any]
    page: int
    page_size: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = max(1, math.ceil(self.total / self.page_size))


BucketSource = Union[Mapping[str, Bucket], Iterable[Bucket]]


class AggregationEngine:
    """
    Turns raw transactions into calendar buckets and totals.

    Keys are derived from the transaction timestamp expressed in the
    configured zone (see finledger.core.clock).
    """

    def __init__(self, zone: tzinfo = timezone.utc) -> None:
        self.zone = zone

    def bucket_key(self, when: datetime, granularity: Granularity) -> str:
        return localize(when, self.zone).strftime(_KEY_FORMATS[Granularity(granularity)])

    def bucket(self, transactions: Iterable[Transaction], granularity: Granularity) -> Dict[str, Bucket]:
        buckets: Dict[str, Bucket] = {}
        for tx in transactions:
            key = self.bucket_key(tx.date, granularity)
            if key not in buckets:
                buckets[key] = Bucket(key)
            buckets[key].add(tx)
        return dict(sorted(buckets.items()))

    def totals(self, transactions: Iterable[Transaction]) -> Totals:
        totals = Totals()
        for tx in transactions:
            if tx.kind == TransactionKind.INCOME:
                totals.income += tx.amount
            else:
                totals.expense += tx.amount
        return totals

    @staticmethod
    def extremum(buckets: BucketSource, field_name: str = "savings", direction: str = "max") -> Optional[Bucket]:
        """
        Bucket with the largest/smallest value of field_name (savings, expense
        or income). Ties go to the lexicographically smallest key.
        """
        if field_name not in ("savings", "expense", "income"):
            raise ValueError(f"Unsupported bucket field: {field_name}")
        if direction not in ("max", "min"):
            raise ValueError(f"Unsupported direction: {direction}")

        ordered = _ordered(buckets)
        if not ordered:
            return None
        pick = max if direction == "max" else min
        # max()/min() keep the first of equal candidates, so key order decides ties
        return pick(ordered, key=lambda b: getattr(b, field_name))

    @classmethod
    def lowest_positive_expense(cls, buckets: BucketSource) -> Optional[Bucket]:
        """Lowest-spending bucket among those that spent anything at all."""
        return cls.extremum([b for b in _ordered(buckets) if b.expense > 0], "expense", "min")

    def filter_transactions(
        self,
        transactions: Iterable[Transaction],
        query: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        kind: Optional[TransactionKind] = None,
    ) -> List[Transaction]:
        """Search title/notes (case-insensitive) within an inclusive date range."""
        needle = (query or "").strip().lower()
        start = localize(date_from, self.zone) if date_from else None
        end = localize(date_to, self.zone) if date_to else None

        matches = []
        for tx in transactions:
            if kind is not None and tx.kind != kind:
                continue
            when = localize(tx.date, self.zone)
            if start and when < start:
                continue
            if end and when > end:
                continue
            if needle and needle not in tx.title.lower() and needle not in tx.notes.lower():
                continue
            matches.append(tx)
        return matches

    @staticmethod
    def paginate(items: Sequence[Any], page: int, page_size: int) -> Page:
        total = len(items)
        last_page = max(1, math.ceil(total / page_size))
        page = min(max(1, page), last_page)
        start = (page - 1) * page_size
        return Page(list(items[start:start + page_size]), page, page_size, total)


def _ordered(buckets: BucketSource) -> List[Bucket]:
    values = buckets.values() if isinstance(buckets, Mapping) else buckets
    return sorted(values, key=lambda b: b.key)
