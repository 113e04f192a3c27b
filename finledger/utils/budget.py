"""
Monthly budget policy.

Manual mode keeps whatever limit was last set. Auto mode re-derives the limit
from current-month income on every totals pass.
"""
from dataclasses import asdict, dataclass
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, Optional

from finledger.core.clock import localize, month_window
from finledger.models.budget import BudgetPolicy
from finledger.models.fields import round_half_up
from finledger.models.transaction import Transaction, TransactionKind

DEFAULT_AUTO_RATIO = 0.25


@dataclass
class BudgetStatus:
    month: str
    monthly_limit: float
    auto_mode: bool
    spent: float
    remaining: float
    exceeded: bool

    def to_dict(self) -> Dict:
        return asdict(self)


def month_sum(
    transactions: Iterable[Transaction],
    kind: TransactionKind,
    now: Optional[datetime] = None,
    zone: tzinfo = timezone.utc,
) -> float:
    start, end = month_window(now or datetime.now(zone), zone)
    return sum(
        tx.amount
        for tx in transactions
        if tx.kind == kind and start <= localize(tx.date, zone) < end
    )


def auto_limit(
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
    zone: tzinfo = timezone.utc,
    ratio: float = DEFAULT_AUTO_RATIO,
) -> int:
    return round_half_up(ratio * month_sum(transactions, TransactionKind.INCOME, now, zone))


def apply_policy(
    policy: BudgetPolicy,
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
    zone: tzinfo = timezone.utc,
    ratio: float = DEFAULT_AUTO_RATIO,
) -> BudgetPolicy:
    """Return the policy after a totals pass; unchanged in manual mode."""
    if not policy.auto_mode:
        return policy
    limit = auto_limit(transactions, now, zone, ratio)
    if limit == policy.monthly_limit:
        return policy
    return policy.model_copy(update={"monthly_limit": float(limit)})


def budget_status(
    policy: BudgetPolicy,
    transactions: Iterable[Transaction],
    now: Optional[datetime] = None,
    zone: tzinfo = timezone.utc,
) -> BudgetStatus:
    now = localize(now or datetime.now(zone), zone)
    spent = round(month_sum(transactions, TransactionKind.EXPENSE, now, zone), 2)
    return BudgetStatus(
        month=now.strftime("%Y-%m"),
        monthly_limit=policy.monthly_limit,
        auto_mode=policy.auto_mode,
        spent=spent,
        remaining=round(policy.monthly_limit - spent, 2),
        exceeded=policy.monthly_limit > 0 and spent > policy.monthly_limit,
    )
