"""
Ledger error types.

Transport failures never leave the SyncStore; the domain errors below are the
only ones callers are expected to handle.
"""


class TransportError(Exception):
    """Remote collection service unreachable, timed out, or answered non-2xx."""


class LedgerError(Exception):
    """Base class for domain rejections surfaced to callers."""


class PlanClosedError(LedgerError):
    """Raised when a closed savings record is edited, closed again, or paid into."""

    def __init__(self, record_id: str):
        super().__init__(f"Savings record {record_id} is closed")
        self.record_id = record_id


class RecordNotFoundError(LedgerError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"No {kind} record with id {record_id}")
        self.kind = kind
        self.record_id = record_id


class NotRecurringError(LedgerError):
    """Raised when a monthly deposit targets a one-time saving."""

    def __init__(self, record_id: str):
        super().__init__(f"Savings record {record_id} is not a recurring deposit")
        self.record_id = record_id


class InvalidChangeError(LedgerError):
    """Raised when an edit would leave a record that no longer validates."""

    def __init__(self, record_id: str, reason: str):
        super().__init__(f"Invalid change to record {record_id}: {reason}")
        self.record_id = record_id
