from datetime import datetime, timezone

from finledger.models.transaction import Transaction
from finledger.utils.aggregation import AggregationEngine
from finledger.utils.analytics import AnalyticsEngine, Thresholds

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def tx(tx_id, kind, amount, date, user_id=None):
    return Transaction.model_validate(
        {"_id": tx_id, "type": kind, "amount": amount, "date": date, "userId": user_id}
    )


three_months = [
    tx("t1", "income", 3000, "2025-01-10T09:00:00Z"),
    tx("t2", "expense", 1000, "2025-01-10T18:00:00Z"),
    tx("t3", "income", 3000, "2025-02-10T09:00:00Z"),
    tx("t4", "expense", 500, "2025-02-10T18:00:00Z"),
    tx("t5", "expense", 2000, "2025-03-02T18:00:00Z"),
    tx("t6", "income", 10000, "2025-03-15T09:00:00Z"),
]


def engine(**threshold_overrides):
    return AnalyticsEngine(AggregationEngine(timezone.utc), thresholds=Thresholds(**threshold_overrides))


def test_xp_has_a_floor():
    analytics = engine()
    ctx = analytics.context([tx("a", "income", 100, "2025-03-01T00:00:00Z")], NOW)
    assert analytics.xp(ctx.monthly) == 1200
    assert analytics.level(1200) == 2
    assert analytics.xp({}) == 1200


def test_xp_scales_with_total_savings():
    analytics = engine()
    ctx = analytics.context(three_months, NOW)
    assert analytics.xp(ctx.monthly) == 1250

    big = analytics.context([tx("a", "income", 25000, "2025-03-01T00:00:00Z")], NOW)
    xp = analytics.xp(big.monthly)
    assert xp == 2500
    assert analytics.level(xp) == 3
    assert analytics.level(999) == 1


def test_badges_for_three_month_history():
    analytics = engine()
    badges = analytics.badges(analytics.context(three_months, NOW))
    assert [b.id for b in badges] == [1, 7, 2, 3, 8, 6, 9]

    by_title = {b.title: b for b in badges}
    assert by_title["Frugal Spender"].description == "Only spent 500 in 2025-02"
    assert by_title["Minimalist Day"].description == "Only spent 500 on 2025-02-10"
    assert "Savings Champion" not in by_title
    assert "Finance Tracker" not in by_title


def test_badges_are_recomputed_not_remembered():
    analytics = engine()
    assert analytics.badges(analytics.context(three_months, NOW)) == analytics.badges(analytics.context(three_months, NOW))
    later = datetime(2025, 4, 2, tzinfo=timezone.utc)
    ids = [b.id for b in analytics.badges(analytics.context(three_months, later))]
    assert 1 not in ids
    assert 7 not in ids


def test_thresholds_are_configurable():
    strict = engine(saver_pro_month_savings=9000, consistency_months=4)
    ids = [b.id for b in strict.badges(strict.context(three_months, NOW))]
    assert 1 not in ids
    assert 3 not in ids

    generous = engine(champion_month_savings=7000, tracker_transactions=5)
    ids = [b.id for b in generous.badges(generous.context(three_months, NOW))]
    assert 5 in ids
    assert 4 in ids


def test_no_spending_means_no_frugal_badges():
    analytics = engine()
    only_income = [tx("a", "income", 100, "2025-03-01T00:00:00Z")]
    ids = [b.id for b in analytics.badges(analytics.context(only_income, NOW))]
    assert 6 not in ids
    assert 9 not in ids


def test_highlights_include_best_and_worst():
    analytics = engine()
    highlights = analytics.highlights(analytics.context(three_months, NOW))
    assert highlights["best_month"]["key"] == "2025-03"
    assert highlights["best_day"]["key"] == "2025-03-15"
    assert highlights["highest_expense_month"]["key"] == "2025-03"
    assert highlights["lowest_expense_day"]["key"] == "2025-02-10"


def test_derived_leaderboard_ranks_subjects_stably():
    analytics = engine()
    transactions = [
        tx("a", "income", 100, "2025-03-01T00:00:00Z", "asha"),
        tx("b", "income", 300, "2025-03-01T00:00:00Z", "ben"),
        tx("c", "income", 100, "2025-03-01T00:00:00Z"),
        tx("d", "expense", 300, "2025-03-02T00:00:00Z"),
        tx("e", "income", 100, "2025-03-03T00:00:00Z", "chen"),
    ]
    board = analytics.leaderboard(transactions)
    assert [(e.rank, e.subject) for e in board] == [(1, "ben"), (2, "asha"), (3, "chen"), (4, "You")]
    assert board[0].net_savings == 300
    assert board[0].xp == 30
    assert board[3].net_savings == 0
    assert board[3].xp == 0


def test_remote_leaderboard_is_preferred_when_available():
    analytics = engine()
    rows = [{"name": "Asha", "savings": 900, "xp": 90}, "junk", {"name": "Ben", "savings": "n/a"}]
    board = analytics.leaderboard(three_months, rows)
    assert [(e.rank, e.subject, e.net_savings, e.xp) for e in board] == [(1, "Asha", 900, 90), (2, "Ben", 0, 0)]

    report = analytics.report(three_months, NOW, rows)
    assert report["leaderboard_source"] == "remote"
    assert analytics.report(three_months, NOW)["leaderboard_source"] == "derived"
