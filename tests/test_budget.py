from datetime import datetime, timezone

from finledger.models.budget import BudgetPolicy
from finledger.models.transaction import Transaction
from finledger.utils.budget import apply_policy, auto_limit, budget_status

NOW = datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc)


def tx(kind, amount, date):
    return Transaction.model_validate({"_id": f"{kind}-{date}", "type": kind, "amount": amount, "date": date})


march_and_february = [
    tx("income", 4000, "2025-03-05T10:00:00Z"),
    tx("income", 1000, "2025-02-20T10:00:00Z"),
    tx("expense", 1200, "2025-03-07T10:00:00Z"),
    tx("expense", 700, "2025-02-21T10:00:00Z"),
]


def test_auto_limit_is_quarter_of_current_month_income():
    assert auto_limit(march_and_february, NOW, timezone.utc) == 1000


def test_month_window_includes_start_and_excludes_next_month():
    edge_cases = [
        tx("income", 400, "2025-03-01T00:00:00Z"),
        tx("income", 10000, "2025-04-01T00:00:00Z"),
        tx("income", 10000, "2025-02-28T23:59:59Z"),
    ]
    assert auto_limit(edge_cases, NOW, timezone.utc) == 100


def test_auto_limit_rounds_half_up():
    assert auto_limit([tx("income", 10, "2025-03-02T00:00:00Z")], NOW, timezone.utc) == 3
    assert auto_limit([], NOW, timezone.utc) == 0


def test_manual_policy_is_left_alone():
    policy = BudgetPolicy(monthly_limit=750, auto_mode=False)
    assert apply_policy(policy, march_and_february, NOW, timezone.utc) is policy


def test_auto_policy_tracks_income():
    policy = BudgetPolicy(monthly_limit=0, auto_mode=True)
    updated = apply_policy(policy, march_and_february, NOW, timezone.utc)
    assert updated.monthly_limit == 1000
    assert updated.auto_mode is True
    # already in step: same object back
    assert apply_policy(updated, march_and_february, NOW, timezone.utc) is updated

    more_income = march_and_february + [tx("income", 2000, "2025-03-10T00:00:00Z")]
    assert apply_policy(updated, more_income, NOW, timezone.utc).monthly_limit == 1500


def test_custom_ratio():
    policy = BudgetPolicy(auto_mode=True)
    assert apply_policy(policy, march_and_february, NOW, timezone.utc, ratio=0.5).monthly_limit == 2000


def test_status_reports_current_month_spend():
    status = budget_status(BudgetPolicy(monthly_limit=1000), march_and_february, NOW, timezone.utc)
    assert status.month == "2025-03"
    assert status.spent == 1200
    assert status.remaining == -200
    assert status.exceeded is True

    unlimited = budget_status(BudgetPolicy(), march_and_february, NOW, timezone.utc)
    assert unlimited.exceeded is False
