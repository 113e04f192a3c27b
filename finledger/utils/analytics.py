from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from finledger.models.fields import coerce_amount
from finledger.models.transaction import Transaction, TransactionKind
from finledger.utils.aggregation import AggregationEngine, Bucket, Granularity

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "You"


@dataclass(frozen=True)
class Badge:
    id: int
    title: str
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LeaderboardEntry:
    rank: int
    subject: str
    net_savings: float
    xp: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Thresholds:
    saver_pro_month_savings: float = 5000
    daily_saver_savings: float = 0
    budget_master_expense_ratio: float = 0.6
    consistency_months: int = 3
    tracker_transactions: int = 10
    champion_month_savings: float = 10000
    star_day_savings: float = 5000


@dataclass
class XPScale:
    floor: int = 1200
    currency_per_xp: int = 10
    xp_per_level: int = 1000


@dataclass
class AnalyticsContext:
    """Aggregates every badge rule is evaluated against."""

    monthly: Dict[str, Bucket]
    daily: Dict[str, Bucket]
    transaction_count: int
    current_month_key: str
    today_key: str
    thresholds: Thresholds = field(default_factory=Thresholds)

    @property
    def current_month(self) -> Bucket:
        return self.monthly.get(self.current_month_key) or Bucket(self.current_month_key)

    @property
    def today(self) -> Bucket:
        return self.daily.get(self.today_key) or Bucket(self.today_key)

    @property
    def best_month(self) -> Optional[Bucket]:
        return AggregationEngine.extremum(self.monthly, "savings", "max")

    @property
    def best_day(self) -> Optional[Bucket]:
        return AggregationEngine.extremum(self.daily, "savings", "max")

    @property
    def lowest_expense_month(self) -> Optional[Bucket]:
        return AggregationEngine.lowest_positive_expense(self.monthly)

    @property
    def lowest_expense_day(self) -> Optional[Bucket]:
        return AggregationEngine.lowest_positive_expense(self.daily)


@dataclass(frozen=True)
class BadgeRule:
    id: int
    title: str
    applies: Callable[[AnalyticsContext], bool]
    describe: Callable[[AnalyticsContext], str]

    def evaluate(self, ctx: AnalyticsContext) -> Optional[Badge]:
        if not self.applies(ctx):
            return None
        return Badge(self.id, self.title, self.describe(ctx))


def _expense_ratio(ctx: AnalyticsContext) -> Optional[float]:
    month = ctx.current_month
    if month.income <= 0:
        return None
    return month.expense / month.income


def _budget_master(ctx: AnalyticsContext) -> bool:
    ratio = _expense_ratio(ctx)
    return ratio is not None and ratio < ctx.thresholds.budget_master_expense_ratio


def default_badge_rules() -> List[BadgeRule]:
    """The stock badge set. Thresholds come from the context, not from here."""
    return [
        BadgeRule(
            1, "Saver Pro",
            lambda c: c.current_month.savings > c.thresholds.saver_pro_month_savings,
            lambda c: f"Saved {c.current_month.savings:,.0f} this month",
        ),
        BadgeRule(
            7, "Daily Saver",
            lambda c: c.today.savings > c.thresholds.daily_saver_savings,
            lambda c: f"Saved {c.today.savings:,.0f} today",
        ),
        BadgeRule(
            2, "Budget Master",
            _budget_master,
            lambda c: f"Spent only {_expense_ratio(c) * 100:.0f}% of income",
        ),
        BadgeRule(
            3, "Consistency King",
            lambda c: len(c.monthly) >= c.thresholds.consistency_months,
            lambda c: f"Tracking for {len(c.monthly)} months",
        ),
        BadgeRule(
            4, "Finance Tracker",
            lambda c: c.transaction_count > c.thresholds.tracker_transactions,
            lambda c: f"Logged {c.transaction_count} transactions",
        ),
        BadgeRule(
            5, "Savings Champion",
            lambda c: c.best_month is not None and c.best_month.savings > c.thresholds.champion_month_savings,
            lambda c: f"Saved {c.best_month.savings:,.0f} in {c.best_month.key}",
        ),
        BadgeRule(
            8, "Star Day",
            lambda c: c.best_day is not None and c.best_day.savings > c.thresholds.star_day_savings,
            lambda c: f"Saved {c.best_day.savings:,.0f} on {c.best_day.key}",
        ),
        BadgeRule(
            6, "Frugal Spender",
            lambda c: c.lowest_expense_month is not None,
            lambda c: f"Only spent {c.lowest_expense_month.expense:,.0f} in {c.lowest_expense_month.key}",
        ),
        BadgeRule(
            9, "Minimalist Day",
            lambda c: c.lowest_expense_day is not None,
            lambda c: f"Only spent {c.lowest_expense_day.expense:,.0f} on {c.lowest_expense_day.key}",
        ),
    ]


class AnalyticsEngine:
    """
    XP, level, badges and leaderboard. Everything is recomputed from the
    transactions on each call; nothing is cached or persisted.
    """

    def __init__(
        self,
        aggregation: AggregationEngine,
        thresholds: Optional[Thresholds] = None,
        xp_scale: Optional[XPScale] = None,
        rules: Optional[Sequence[BadgeRule]] = None,
    ) -> None:
        self.aggregation = aggregation
        self.thresholds = thresholds or Thresholds()
        self.xp_scale = xp_scale or XPScale()
        self.rules = list(rules) if rules is not None else default_badge_rules()

    def context(self, transactions: Sequence[Transaction], now: Optional[datetime] = None) -> AnalyticsContext:
        now = now or datetime.now(self.aggregation.zone)
        return AnalyticsContext(
            monthly=self.aggregation.bucket(transactions, Granularity.MONTH),
            daily=self.aggregation.bucket(transactions, Granularity.DAY),
            transaction_count=len(transactions),
            current_month_key=self.aggregation.bucket_key(now, Granularity.MONTH),
            today_key=self.aggregation.bucket_key(now, Granularity.DAY),
            thresholds=self.thresholds,
        )

    def xp(self, monthly: Dict[str, Bucket]) -> int:
        total_savings = sum(b.savings for b in monthly.values())
        return max(self.xp_scale.floor, math.floor(total_savings / self.xp_scale.currency_per_xp))

    def level(self, xp: int) -> int:
        return xp // self.xp_scale.xp_per_level + 1

    def badges(self, ctx: AnalyticsContext) -> List[Badge]:
        earned = []
        for rule in self.rules:
            badge = rule.evaluate(ctx)
            if badge is not None:
                earned.append(badge)
        return earned

    def highlights(self, ctx: AnalyticsContext) -> Dict[str, Optional[Dict[str, Any]]]:
        def dump(bucket: Optional[Bucket]):
            return bucket.to_dict() if bucket else None

        return {
            "best_month": dump(ctx.best_month),
            "best_day": dump(ctx.best_day),
            "highest_expense_month": dump(AggregationEngine.extremum(ctx.monthly, "expense", "max")),
            "highest_expense_day": dump(AggregationEngine.extremum(ctx.daily, "expense", "max")),
            "lowest_expense_month": dump(ctx.lowest_expense_month),
            "lowest_expense_day": dump(ctx.lowest_expense_day),
        }

    def derive_leaderboard(self, transactions: Iterable[Transaction]) -> List[LeaderboardEntry]:
        """Group by subject (userId, defaulting to a single subject) and rank by net savings."""
        net_by_subject: Dict[str, float] = {}
        for tx in transactions:
            subject = tx.user_id or DEFAULT_SUBJECT
            delta = tx.amount if tx.kind == TransactionKind.INCOME else -tx.amount
            net_by_subject[subject] = net_by_subject.get(subject, 0.0) + delta

        # sorted() is stable: equal net savings keep first-seen order
        ranked = sorted(net_by_subject.items(), key=lambda item: item[1], reverse=True)
        per_xp = self.xp_scale.currency_per_xp
        return [
            LeaderboardEntry(
                rank=idx + 1,
                subject=subject,
                net_savings=round(max(0.0, net), 2),
                xp=math.floor(max(0.0, net) / per_xp),
            )
            for idx, (subject, net) in enumerate(ranked)
        ]

    def leaderboard(
        self,
        transactions: Iterable[Transaction],
        remote: Optional[List[Dict[str, Any]]] = None,
    ) -> List[LeaderboardEntry]:
        if remote is None:
            return self.derive_leaderboard(transactions)
        entries = []
        for row in remote:
            if not isinstance(row, dict):
                logger.warning("Skipping malformed leaderboard row: %r", row)
                continue
            entries.append(
                LeaderboardEntry(
                    rank=len(entries) + 1,
                    subject=str(row.get("name") or row.get("subject") or DEFAULT_SUBJECT),
                    net_savings=coerce_amount(row.get("savings", row.get("net_savings"))),
                    xp=int(coerce_amount(row.get("xp"))),
                )
            )
        return entries

    def report(
        self,
        transactions: Sequence[Transaction],
        now: Optional[datetime] = None,
        remote_leaderboard: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        ctx = self.context(transactions, now)
        xp = self.xp(ctx.monthly)
        return {
            "xp": xp,
            "level": self.level(xp),
            "badges": [b.to_dict() for b in self.badges(ctx)],
            "highlights": self.highlights(ctx),
            "leaderboard": [e.to_dict() for e in self.leaderboard(transactions, remote_leaderboard)],
            "leaderboard_source": "remote" if remote_leaderboard is not None else "derived",
        }
