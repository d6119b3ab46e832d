"""Request/response schemas for digest schedules."""

import re
import uuid
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.schedule import Frequency, ScheduleStatus

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"


def _validate_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


def _validate_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {value}") from e
    return value


class ScheduleCreate(BaseModel):
    db_id: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., max_length=320)
    frequency: Frequency = Frequency.DAILY
    time_of_day: str = Field(..., pattern=TIME_OF_DAY_PATTERN)
    timezone: str = Field("UTC", max_length=64)
    start_date: date
    end_date: date | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return _validate_email(v)

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        return _validate_timezone(v)

    @model_validator(mode="after")
    def check_date_range(self) -> "ScheduleCreate":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ScheduleUpdate(BaseModel):
    db_id: str | None = Field(None, min_length=1, max_length=64)
    email: str | None = Field(None, max_length=320)
    frequency: Frequency | None = None
    time_of_day: str | None = Field(None, pattern=TIME_OF_DAY_PATTERN)
    timezone: str | None = Field(None, max_length=64)
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        return _validate_email(v) if v is not None else v

    @field_validator("timezone")
    @classmethod
    def check_timezone(cls, v: str | None) -> str | None:
        return _validate_timezone(v) if v is not None else v


class ScheduleResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    db_id: str
    email: str
    frequency: Frequency
    time_of_day: str
    timezone: str
    start_date: date
    end_date: date | None = None
    status: ScheduleStatus
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ScheduleList(BaseModel):
    schedules: list[ScheduleResponse]
    total: int
