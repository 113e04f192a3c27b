from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from finledger.models.fields import coerce_amount, coerce_timestamp


class SavingStatus(str, Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class DepositEntry(BaseModel):
    amount: float = 0.0
    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value):
        return coerce_amount(value)

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value):
        return coerce_timestamp(value)


class _SavingFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    status: SavingStatus = SavingStatus.ACTIVE
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    closed_at: Optional[datetime] = Field(default=None, alias="closedAt")

    @property
    def is_closed(self) -> bool:
        return self.status == SavingStatus.CLOSED


class OneTimeSavingCreate(_SavingFields):
    type: Literal["saving"] = "saving"
    amount: float = 0.0
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value):
        return coerce_amount(value)

    @field_validator("expires_at", mode="before")
    @classmethod
    def _coerce_expiry(cls, value):
        if value in (None, ""):
            return None
        return coerce_timestamp(value)


class RecurringDepositCreate(_SavingFields):
    type: Literal["rd"] = "rd"
    monthly_amount: float = Field(default=0.0, alias="rdMonthly")
    tenure_months: int = Field(default=0, alias="rdMonths")
    start_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="rdStart")
    entries: List[DepositEntry] = Field(default_factory=list)

    @field_validator("monthly_amount", mode="before")
    @classmethod
    def _coerce_monthly(cls, value):
        return coerce_amount(value)

    @field_validator("tenure_months", mode="before")
    @classmethod
    def _coerce_tenure(cls, value):
        return int(coerce_amount(value))

    @field_validator("start_date", mode="before")
    @classmethod
    def _coerce_start(cls, value):
        return coerce_timestamp(value)

    @field_validator("entries", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return [] if value is None else value


class OneTimeSaving(OneTimeSavingCreate):
    id: str = Field(alias="_id")


class RecurringDeposit(RecurringDepositCreate):
    id: str = Field(alias="_id")


SavingCreate = Annotated[Union[OneTimeSavingCreate, RecurringDepositCreate], Field(discriminator="type")]
SavingsRecord = Annotated[Union[OneTimeSaving, RecurringDeposit], Field(discriminator="type")]

saving_create_adapter = TypeAdapter(SavingCreate)
savings_record_adapter = TypeAdapter(SavingsRecord)
