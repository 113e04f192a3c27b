from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finledger.models.fields import coerce_amount


class BudgetPolicy(BaseModel):
    """Monthly spending limit. In auto mode the limit is derived, never user-set."""

    model_config = ConfigDict(populate_by_name=True)

    monthly_limit: float = Field(default=0.0, alias="monthly")
    auto_mode: bool = Field(default=False, alias="auto")

    @field_validator("monthly_limit", mode="before")
    @classmethod
    def _coerce_limit(cls, value):
        return coerce_amount(value)


class BudgetUpdate(BaseModel):
    monthly_limit: Optional[float] = None
    auto_mode: Optional[bool] = None
