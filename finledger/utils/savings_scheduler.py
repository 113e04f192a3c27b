from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from finledger.core.clock import add_months, localize
from finledger.core.errors import InvalidChangeError, PlanClosedError
from finledger.models.fields import round_half_up
from finledger.models.savings import (
    DepositEntry,
    OneTimeSaving,
    RecurringDeposit,
    SavingStatus,
    savings_record_adapter,
)

SavingsRecordType = Union[OneTimeSaving, RecurringDeposit]

# fields a caller may not change through an edit
_FROZEN_FIELDS = {"_id", "id", "type", "entries", "status", "closedAt", "closed_at", "createdAt", "created_at"}


@dataclass
class RDProjection:
    """Derived schedule for one recurring deposit at a given instant."""

    paid_months: int
    remaining: int
    next_due_date: datetime
    maturity_date: datetime
    principal: float
    paid_total: float
    maturity_estimate: int
    overdue: bool
    matured: bool

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["next_due_date"] = self.next_due_date.isoformat()
        data["maturity_date"] = self.maturity_date.isoformat()
        return data


class SavingsScheduler:
    """
    Recurring-deposit projections and the savings lifecycle
    (active -> closed, terminal).

    Deposits are not checked against the tenure or the due date; a plan can
    collect more entries than tenure_months.
    """

    def __init__(self, annual_rate: float = 0.05, zone: tzinfo = timezone.utc) -> None:
        self.annual_rate = annual_rate
        self._zone = zone

    def estimate_maturity(self, monthly_amount: float, tenure_months: int) -> int:
        """Simple interest on the average balance over the tenure."""
        principal = monthly_amount * tenure_months
        avg_balance = principal / 2
        years = tenure_months / 12
        interest = avg_balance * self.annual_rate * years
        return round_half_up(principal + interest)

    def project_rd(self, plan: RecurringDeposit, as_of: Optional[datetime] = None) -> RDProjection:
        as_of = localize(as_of or datetime.now(self._zone), self._zone)
        start = localize(plan.start_date, self._zone)

        paid_months = len(plan.entries)
        remaining = max(0, plan.tenure_months - paid_months)
        next_due = add_months(start, paid_months)

        return RDProjection(
            paid_months=paid_months,
            remaining=remaining,
            next_due_date=next_due,
            maturity_date=add_months(start, plan.tenure_months),
            principal=plan.monthly_amount * plan.tenure_months,
            paid_total=round(sum(entry.amount for entry in plan.entries), 2),
            maturity_estimate=self.estimate_maturity(plan.monthly_amount, plan.tenure_months),
            overdue=remaining > 0 and as_of > next_due,
            matured=remaining == 0,
        )

    def add_monthly_deposit(
        self,
        plan: RecurringDeposit,
        amount: Optional[float] = None,
        date: Optional[datetime] = None,
    ) -> RecurringDeposit:
        self._ensure_active(plan)
        entry = DepositEntry(
            amount=plan.monthly_amount if amount is None else amount,
            date=date or datetime.now(timezone.utc),
        )
        return plan.model_copy(update={"entries": [*plan.entries, entry]})

    def close_plan(self, record: SavingsRecordType, closed_at: Optional[datetime] = None) -> SavingsRecordType:
        self._ensure_active(record)
        return record.model_copy(
            update={
                "status": SavingStatus.CLOSED,
                "closed_at": closed_at or datetime.now(timezone.utc),
            }
        )

    def edit_saving(self, record: SavingsRecordType, changes: Dict[str, Any]) -> SavingsRecordType:
        """Apply user edits to an active record; variant, entries and lifecycle fields are kept."""
        self._ensure_active(record)
        aliases = {name: info.alias or name for name, info in type(record).model_fields.items()}
        allowed = {aliases.get(k, k): v for k, v in changes.items() if k not in _FROZEN_FIELDS}
        merged = {**record.model_dump(by_alias=True), **allowed}
        try:
            return savings_record_adapter.validate_python(merged)
        except ValidationError as e:
            raise InvalidChangeError(record.id, f"{e.error_count()} validation error(s)") from e

    def is_expired(self, record: SavingsRecordType, as_of: Optional[datetime] = None) -> bool:
        """One-time savings expire at expires_at; recurring deposits at their maturity date."""
        if record.is_closed:
            return False
        as_of = localize(as_of or datetime.now(self._zone), self._zone)
        if isinstance(record, OneTimeSaving):
            return record.expires_at is not None and localize(record.expires_at, self._zone) <= as_of
        return self.project_rd(record, as_of).maturity_date <= as_of

    @staticmethod
    def _ensure_active(record: SavingsRecordType) -> None:
        if record.is_closed:
            raise PlanClosedError(record.id)
