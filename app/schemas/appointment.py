from datetime import date, datetime, time
from typing import Optional, List
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from enum import Enum

# Import enums from the model to avoid duplication
from app.models.appointment import AppointmentStatus, BookingSource
from app.utils.validation import format_local_time, parse_iso_date, parse_local_time


class DashboardTab(str, Enum):
    PENDING = "pending"
    TODAY = "today"
    UPCOMING = "upcoming"
    ALL = "all"


class SlotRequest(BaseModel):
    """A (date, time) pair as it crosses the API boundary."""

    date: date
    time: time

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, v):
        return parse_iso_date(v)

    @field_validator("time", mode="before")
    @classmethod
    def parse_time(cls, v):
        return parse_local_time(v)


class AppointmentCreate(SlotRequest):
    client_name: str = Field(..., min_length=1, max_length=120)
    phone: Optional[str] = Field(None, max_length=50)
    notification_target: Optional[str] = Field(None, max_length=500)


class ManualBookingCreate(AppointmentCreate):
    admin_note: Optional[str] = None


class ClientReschedule(SlotRequest):
    client_name: str = Field(..., min_length=1, max_length=120)


class OperatorReschedule(SlotRequest):
    admin_note: Optional[str] = None


class SuggestionCreate(SlotRequest):
    admin_note: Optional[str] = None


class ClientAction(BaseModel):
    client_name: str = Field(..., min_length=1, max_length=120)


class OperatorNote(BaseModel):
    admin_note: Optional[str] = None


# Response schemas
class Appointment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uuid: UUID
    client_name: str
    phone: Optional[str] = None
    date: date
    time: time
    status: AppointmentStatus
    previous_status: Optional[AppointmentStatus] = None
    status_changed_at: Optional[datetime] = None
    suggestion_date: Optional[date] = None
    suggestion_time: Optional[time] = None
    booking_source: BookingSource
    admin_note: Optional[str] = None
    reschedule_count: int
    created_at: datetime

    @field_serializer("time", "suggestion_time")
    def serialize_time(self, v: Optional[time]):
        return format_local_time(v) if v is not None else None


class AppointmentList(BaseModel):
    appointments: List[Appointment]
    total_count: int


class AppointmentStats(BaseModel):
    pending_count: int
    today_count: int
    by_status: dict[str, int]


class AvailableSlots(BaseModel):
    date: date
    slots: List[str]


class ClientEligibility(BaseModel):
    client_name: str
    can_book: bool
    reason: Optional[str] = None
    is_released: bool
    has_active_appointment: bool
    cooldown_ends_on: Optional[date] = None


class ClientHistory(BaseModel):
    eligibility: ClientEligibility
    appointments: List[Appointment]
