from datetime import date, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from app.utils.validation import (
    format_local_time,
    parse_iso_date,
    parse_local_time,
    validate_shop_hours,
)


def _parse_optional_time(v):
    if v is None or v == "":
        return None
    return parse_local_time(v)


class ShopSettings(BaseModel):
    """Immutable snapshot of the shop configuration aggregate.

    Every decision function receives one of these explicitly instead of
    reading shared state.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    is_open: bool = True
    open_time: time
    close_time: time
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    interval_minutes: int = Field(..., gt=0)
    work_days: frozenset[int] = frozenset()
    blocked_dates: frozenset[date] = frozenset()
    released_clients: frozenset[str] = frozenset()
    holiday_country: Optional[str] = None
    version: int = 1

    @field_validator("open_time", "close_time", mode="before")
    @classmethod
    def parse_times(cls, v):
        return parse_local_time(v)

    @field_validator("lunch_start", "lunch_end", mode="before")
    @classmethod
    def parse_lunch(cls, v):
        return _parse_optional_time(v)

    @field_validator("blocked_dates", mode="before")
    @classmethod
    def parse_blocked_dates(cls, v):
        return frozenset(parse_iso_date(d) for d in (v or ()))

    @model_validator(mode="after")
    def validate_hours(self):
        errors = validate_shop_hours(
            self.open_time,
            self.close_time,
            self.interval_minutes,
            self.lunch_start,
            self.lunch_end,
            self.work_days,
        )
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def has_lunch(self) -> bool:
        return self.lunch_start is not None and self.lunch_end is not None


class ShopConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_open: bool
    open_time: time
    close_time: time
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    interval_minutes: int
    work_days: List[int]
    blocked_dates: List[str]
    released_clients: List[str]
    holiday_country: Optional[str] = None
    version: int

    @field_serializer("open_time", "close_time", "lunch_start", "lunch_end")
    def serialize_time(self, v: Optional[time]):
        return format_local_time(v) if v is not None else None


class ShopConfigUpdate(BaseModel):
    """Partial update of the operator-facing configuration knobs."""

    open_time: Optional[time] = None
    close_time: Optional[time] = None
    lunch_start: Optional[time] = None
    lunch_end: Optional[time] = None
    interval_minutes: Optional[int] = Field(None, gt=0)
    work_days: Optional[List[int]] = None
    blocked_dates: Optional[List[date]] = None
    released_clients: Optional[List[str]] = None
    holiday_country: Optional[str] = Field(None, max_length=10)
    is_open: Optional[bool] = None

    @field_validator("open_time", "close_time", mode="before")
    @classmethod
    def parse_times(cls, v):
        return _parse_optional_time(v)

    @field_validator("lunch_start", "lunch_end", mode="before")
    @classmethod
    def parse_lunch(cls, v):
        return _parse_optional_time(v)

    @field_validator("blocked_dates", mode="before")
    @classmethod
    def parse_blocked_dates(cls, v):
        if v is None:
            return v
        return [parse_iso_date(d) for d in v]

    @field_validator("work_days")
    @classmethod
    def validate_work_days(cls, v):
        if v is not None and any(not 0 <= d <= 6 for d in v):
            raise ValueError("work_days must be between 0 (Sunday) and 6 (Saturday)")
        return v


class ClientNameRequest(BaseModel):
    client_name: str = Field(..., min_length=1, max_length=120)


class BlockedDateRequest(BaseModel):
    date: date

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_iso_date(v)


class ShopStatus(BaseModel):
    """Public view of the shop switch and hours."""

    is_open: bool
    open_time: str
    close_time: str
    interval_minutes: int
    work_days: List[int]
