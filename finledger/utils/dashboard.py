"""
Dashboard
Cooperative orchestration on one asyncio loop.

- refresh() reads transactions and savings as one joint operation; one failed
  leg serves both lists from cache.
- Every refresh takes a sequence number at issue time. A response is applied
  only when it is newer than the last applied one, so a slow, older response
  cannot overwrite newer state.
- Mutations are fire-and-forget: they return an asyncio.Task resolving to an
  Outcome, and schedule a refresh once they settle.
- Invalidation signals each trigger their own refresh; bursts are not merged.
- A plan counts as closed from the moment its close is accepted locally, so a
  deposit or edit issued before the close settles is still rejected.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ValidationError

from finledger.core.clock import now_in
from finledger.core.errors import LedgerError, NotRecurringError, PlanClosedError, RecordNotFoundError
from finledger.db.remote import Collection
from finledger.db.sync_store import CACHE, SyncStore
from finledger.models.budget import BudgetPolicy
from finledger.models.note import Note, NoteCreate
from finledger.models.savings import (
    OneTimeSaving,
    OneTimeSavingCreate,
    RecurringDeposit,
    RecurringDepositCreate,
    SavingStatus,
    savings_record_adapter,
)
from finledger.models.transaction import Transaction, TransactionCreate
from finledger.utils.aggregation import AggregationEngine, Granularity, Totals
from finledger.utils.analytics import AnalyticsEngine
from finledger.utils.budget import DEFAULT_AUTO_RATIO, BudgetStatus, apply_policy, budget_status
from finledger.utils.notifications import NotificationBus, due_reminders
from finledger.utils.savings_scheduler import SavingsScheduler

logger = logging.getLogger(__name__)

SavingsRecordType = Union[OneTimeSaving, RecurringDeposit]


@dataclass
class Outcome:
    """Result of a fire-and-forget operation: a value, a domain error, or a declined no-op."""

    value: Any = None
    error: Optional[LedgerError] = None
    declined: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DashboardState:
    sequence: int = 0
    source: str = CACHE
    transactions: List[Transaction] = field(default_factory=list)
    savings: List[SavingsRecordType] = field(default_factory=list)
    totals: Totals = field(default_factory=Totals)
    refreshed_at: Optional[datetime] = None


@dataclass
class RefreshResult:
    sequence: int
    applied: bool
    state: DashboardState


def parse_records(records: List[Dict[str, Any]], parse: Callable[[Any], Any], label: str) -> List[Any]:
    parsed = []
    for raw in records:
        try:
            parsed.append(parse(raw))
        except ValidationError as e:
            record_id = raw.get("_id") if isinstance(raw, dict) else raw
            logger.warning("Skipping malformed %s record %s (%d errors)", label, record_id, e.error_count())
    return parsed


def to_wire(model: BaseModel, **kwargs) -> Dict[str, Any]:
    kwargs.setdefault("exclude", {"id"})
    return model.model_dump(by_alias=True, mode="json", **kwargs)


# deposits and lifecycle fields only change through their own operations
_EDIT_EXCLUDE = {"id", "entries", "status", "closed_at", "created_at"}


class Dashboard:
    def __init__(
        self,
        store: SyncStore,
        savings: SavingsScheduler,
        aggregation: AggregationEngine,
        analytics: AnalyticsEngine,
        notifications: NotificationBus,
        budget_ratio: float = DEFAULT_AUTO_RATIO,
    ) -> None:
        self._store = store
        self.savings = savings
        self.aggregation = aggregation
        self.analytics = analytics
        self.notifications = notifications
        self.zone = aggregation.zone
        self._budget_ratio = budget_ratio

        self.state = DashboardState()
        self.notes: List[Note] = []
        self.budget = BudgetPolicy.model_validate(store.load_budget() or {})

        self._issued = itertools.count(1)
        self._applied = 0
        self._notes_issued = itertools.count(1)
        self._notes_applied = 0
        self._tasks: Set[asyncio.Task] = set()
        self._closed_ids: Set[str] = set()

    @property
    def store(self) -> SyncStore:
        return self._store

    # Reads

    async def refresh(self) -> RefreshResult:
        sequence = next(self._issued)
        snapshots = await self._store.fetch_joint([Collection.TRANSACTIONS, Collection.SAVINGS])

        if sequence <= self._applied:
            logger.info("Dropping refresh #%d, #%d already applied", sequence, self._applied)
            return RefreshResult(sequence, False, self.state)
        self._applied = sequence

        tx_snapshot = snapshots[Collection.TRANSACTIONS]
        sv_snapshot = snapshots[Collection.SAVINGS]
        transactions = parse_records(tx_snapshot.records, Transaction.model_validate, "transaction")
        savings = parse_records(sv_snapshot.records, savings_record_adapter.validate_python, "savings")

        self.state = DashboardState(
            sequence=sequence,
            source=tx_snapshot.source,
            transactions=transactions,
            savings=savings,
            totals=self.aggregation.totals(transactions),
            refreshed_at=datetime.now(timezone.utc),
        )
        self._recompute_budget()
        return RefreshResult(sequence, True, self.state)

    async def fetch_notes(self) -> List[Note]:
        """Refetch notes and publish a reminder for each one dated today."""
        sequence = next(self._notes_issued)
        snapshot = await self._store.fetch_collection(Collection.NOTES)
        if sequence <= self._notes_applied:
            return self.notes
        self._notes_applied = sequence

        self.notes = parse_records(snapshot.records, Note.model_validate, "note")
        for note in due_reminders(self.notes, now_in(self.zone).date()):
            self.notifications.publish(f"Reminder: {note.text}", "info")
        return self.notes

    async def analytics_report(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        remote = await self._store.fetch_leaderboard()
        return self.analytics.report(self.state.transactions, now, remote)

    def summaries(self, granularity: Granularity) -> List[Dict[str, Any]]:
        buckets = self.aggregation.bucket(self.state.transactions, granularity)
        return [bucket.to_dict() for bucket in buckets.values()]

    def savings_view(self, as_of: Optional[datetime] = None) -> List[Dict[str, Any]]:
        rows = []
        for record in self.state.savings:
            row = record.model_dump(by_alias=True, mode="json")
            if isinstance(record, RecurringDeposit):
                row["projection"] = self.savings.project_rd(record, as_of).to_dict()
            rows.append(row)
        return rows

    def expired_savings(self, as_of: Optional[datetime] = None) -> List[SavingsRecordType]:
        return [record for record in self.state.savings if self.savings.is_expired(record, as_of)]

    # Budget

    def budget_status(self, now: Optional[datetime] = None) -> BudgetStatus:
        return budget_status(self.budget, self.state.transactions, now, self.zone)

    def set_budget(self, monthly_limit: Optional[float] = None, auto_mode: Optional[bool] = None) -> BudgetPolicy:
        changes: Dict[str, Any] = {}
        if auto_mode is not None:
            changes["auto"] = auto_mode
        if monthly_limit is not None:
            changes["monthly"] = monthly_limit
        policy = BudgetPolicy.model_validate({**self.budget.model_dump(by_alias=True), **changes})
        # an explicit limit is ignored while auto mode derives it
        self.budget = apply_policy(policy, self.state.transactions, None, self.zone, self._budget_ratio)
        self._store.save_budget(self.budget.model_dump(by_alias=True))
        return self.budget

    def _recompute_budget(self) -> None:
        updated = apply_policy(self.budget, self.state.transactions, None, self.zone, self._budget_ratio)
        if updated != self.budget:
            logger.info("Auto budget limit %s -> %s", self.budget.monthly_limit, updated.monthly_limit)
            self.budget = updated
            self._store.save_budget(updated.model_dump(by_alias=True))

    # Signals

    def handle_signal(self, name: str) -> asyncio.Task:
        logger.info("Invalidation signal %r, scheduling refresh", name)
        return self._spawn(self.refresh())

    # Mutations

    def submit_transaction(self, payload: TransactionCreate) -> asyncio.Task:
        return self._dispatch(self._store.create_record(Collection.TRANSACTIONS, to_wire(payload)))

    def create_saving(self, payload: Union[OneTimeSavingCreate, RecurringDepositCreate]) -> asyncio.Task:
        body = to_wire(payload)
        body["status"] = SavingStatus.ACTIVE.value
        body["closedAt"] = None
        body["createdAt"] = body.get("createdAt") or datetime.now(timezone.utc).isoformat()
        return self._dispatch(self._store.create_record(Collection.SAVINGS, body))

    def edit_saving(self, saving_id: str, changes: Dict[str, Any]) -> asyncio.Task:
        async def operation():
            edited = self.savings.edit_saving(self._open_saving(saving_id), changes)
            patch = to_wire(edited, exclude=_EDIT_EXCLUDE)
            return await self._store.update_record(Collection.SAVINGS, saving_id, patch)

        return self._dispatch(operation())

    def delete_saving(self, saving_id: str, confirmed: bool = True) -> asyncio.Task:
        if not confirmed:
            return self._declined()

        async def operation():
            self._saving(saving_id)
            return await self._store.delete_record(Collection.SAVINGS, saving_id)

        return self._dispatch(operation())

    def add_monthly_deposit(
        self,
        saving_id: str,
        amount: Optional[float] = None,
        date: Optional[datetime] = None,
    ) -> asyncio.Task:
        async def operation():
            plan = self._open_saving(saving_id)
            if not isinstance(plan, RecurringDeposit):
                raise NotRecurringError(saving_id)
            updated = self.savings.add_monthly_deposit(plan, amount, date)
            entry = updated.entries[-1].model_dump(mode="json")
            return await self._store.append_sub_record(Collection.SAVINGS, saving_id, "entries", entry)

        return self._dispatch(operation())

    def close_saving(self, saving_id: str, confirmed: bool = True, closed_at: Optional[datetime] = None) -> asyncio.Task:
        if not confirmed:
            return self._declined()

        async def operation():
            closed = self.savings.close_plan(self._open_saving(saving_id), closed_at)
            self._closed_ids.add(saving_id)
            patch = to_wire(closed, include={"status", "closed_at"})
            return await self._store.update_record(Collection.SAVINGS, saving_id, patch)

        return self._dispatch(operation())

    def create_note(self, payload: NoteCreate) -> asyncio.Task:
        return self._dispatch(
            self._store.create_record(Collection.NOTES, payload.model_dump(mode="json")),
            then=self.fetch_notes,
        )

    def update_note(self, note_id: str, payload: NoteCreate) -> asyncio.Task:
        return self._dispatch(
            self._store.update_record(Collection.NOTES, note_id, payload.model_dump(mode="json")),
            then=self.fetch_notes,
        )

    def delete_note(self, note_id: str, confirmed: bool = True) -> asyncio.Task:
        if not confirmed:
            return self._declined()
        return self._dispatch(self._store.delete_record(Collection.NOTES, note_id), then=self.fetch_notes)

    def _saving(self, saving_id: str) -> SavingsRecordType:
        for record in self.state.savings:
            if record.id == saving_id:
                return record
        raise RecordNotFoundError(Collection.SAVINGS.value, saving_id)

    def _open_saving(self, saving_id: str) -> SavingsRecordType:
        record = self._saving(saving_id)
        if saving_id in self._closed_ids:
            raise PlanClosedError(saving_id)
        return record

    # Task plumbing

    def _dispatch(self, operation: Awaitable, then: Optional[Callable[[], Awaitable]] = None) -> asyncio.Task:
        follow_up = then or self.refresh

        async def run() -> Outcome:
            try:
                value = await operation
            except LedgerError as e:
                logger.info("Operation rejected: %s", e)
                return Outcome(error=e)
            finally:
                self._spawn(follow_up())
            return Outcome(value=value)

        return self._spawn(run())

    def _declined(self) -> asyncio.Task:
        async def noop() -> Outcome:
            return Outcome(declined=True)

        return self._spawn(noop())

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled mutation and refresh, including follow-ups they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
