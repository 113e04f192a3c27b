from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from finledger.models.fields import coerce_day


class NoteCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: date
    text: str = Field(min_length=1)

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_day(cls, value):
        return coerce_day(value)

    @field_validator("text")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("note text must not be blank")
        return value


class Note(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    date: date
    text: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_day(cls, value):
        return coerce_day(value)
