from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finledger.models.fields import coerce_amount, coerce_timestamp


class TransactionKind(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: TransactionKind = Field(default=TransactionKind.EXPENSE, alias="type")
    title: str = ""
    amount: float = 0.0
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    category: str = ""
    notes: str = ""
    user_id: Optional[str] = Field(default=None, alias="userId")

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value):
        return coerce_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        return coerce_timestamp(value)

    @field_validator("title", "category", "notes", mode="before")
    @classmethod
    def _none_to_blank(cls, value):
        return "" if value is None else value


class Transaction(TransactionCreate):
    """A persisted transaction. Immutable once stored: there is no update or delete path."""

    id: str = Field(alias="_id")
