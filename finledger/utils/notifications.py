"""
Outbound notification channel.

Notifications are (message, severity) events for a presentation collaborator.
They are kept in a bounded outbox and fanned out to subscribers; nothing in
the ledger reacts to them.
"""
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Deque, Dict, Iterable, List
from uuid import uuid4

from finledger.models.note import Note

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "success", "warning", "error")

# inbound invalidation signals
TRANSACTION_CREATED = "transaction:created"
SAVINGS_EXPIRED = "savings:expired"


@dataclass
class Notification:
    message: str
    severity: str = "info"
    id: str = field(default_factory=lambda: uuid4().hex)
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict:
        return asdict(self)


class NotificationBus:
    def __init__(self, max_pending: int = 200) -> None:
        self._subscribers: List[Callable[[Notification], None]] = []
        self._outbox: Deque[Notification] = deque(maxlen=max_pending)

    def subscribe(self, handler: Callable[[Notification], None]) -> None:
        self._subscribers.append(handler)

    def unsubscribe(self, handler: Callable[[Notification], None]) -> None:
        if handler in self._subscribers:
            self._subscribers.remove(handler)

    def publish(self, message: str, severity: str = "info") -> Notification:
        if severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {severity}")
        notification = Notification(message, severity)
        self._outbox.append(notification)
        for handler in list(self._subscribers):
            handler(notification)
        return notification

    def drain(self) -> List[Notification]:
        pending = list(self._outbox)
        self._outbox.clear()
        return pending


def due_reminders(notes: Iterable[Note], today: date) -> List[Note]:
    return [note for note in notes if note.date == today]
