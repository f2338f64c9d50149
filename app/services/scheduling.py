from datetime import date, datetime, time
from typing import Iterable, Optional
import logging

from app.models.appointment import AppointmentStatus, SLOT_HOLDING_STATUSES
from app.schemas.shop import ShopSettings
from app.services.holidays import HolidayService
from app.utils.validation import minutes_of_day, sunday_based_weekday, time_from_minutes


logger = logging.getLogger(__name__)


class ShopCalendar:
    """Slot generation from shop hours, lunch break, workdays and holidays.

    Every method is a pure function of its arguments.
    """

    @staticmethod
    def is_open_on(day: date, settings: ShopSettings) -> bool:
        """Return True if the shop takes bookings on ``day`` at all.

        Blocked dates and public holidays take precedence over workdays.
        """
        if day in settings.blocked_dates:
            return False
        if sunday_based_weekday(day) not in settings.work_days:
            return False
        if HolidayService.is_holiday(settings.holiday_country, day):
            return False
        return True

    @classmethod
    def candidate_slots(cls, day: date, settings: ShopSettings) -> list[time]:
        """
        Ordered slot start times for ``day``.

        Walks from opening to closing time in steps of the configured
        interval, skipping starts inside ``[lunch_start, lunch_end)``.

        Args:
            day: Calendar date to generate slots for
            settings: Shop configuration snapshot

        Returns:
            Slot start times in ascending order, empty when the shop is
            closed that day
        """
        if not cls.is_open_on(day, settings):
            return []

        start = minutes_of_day(settings.open_time)
        end = minutes_of_day(settings.close_time)
        step = settings.interval_minutes
        lunch = None
        if settings.has_lunch:
            lunch = (
                minutes_of_day(settings.lunch_start),
                minutes_of_day(settings.lunch_end),
            )

        slots = []
        current = start
        while current < end:
            if lunch is None or not lunch[0] <= current < lunch[1]:
                slots.append(time_from_minutes(current))
            current += step
        return slots

    @classmethod
    def is_candidate(cls, day: date, slot_time: time, settings: ShopSettings) -> bool:
        return slot_time in cls.candidate_slots(day, settings)

    @classmethod
    def available_slots(
        cls,
        day: date,
        settings: ShopSettings,
        appointments: Iterable,
        now: Optional[datetime] = None,
    ) -> list[time]:
        """Candidate slots that are not occupied and, when ``now`` is given,
        start after it.
        """
        appointments = list(appointments)
        slots = []
        for slot_time in cls.candidate_slots(day, settings):
            if now is not None and datetime.combine(day, slot_time) <= now:
                continue
            if AvailabilityChecker.is_occupied(day, slot_time, appointments):
                continue
            slots.append(slot_time)
        logger.debug(f"{len(slots)} available slots on {day}")
        return slots


class AvailabilityChecker:
    """Double-booking detection over an appointment set."""

    @staticmethod
    def is_occupied(
        day: date,
        slot_time: time,
        appointments: Iterable,
        exclude_id: Optional[int] = None,
    ) -> bool:
        """
        Check whether a (date, time) slot is held by another appointment.

        Pending, accepted, waiting-approval, suggestion-sent and completed
        appointments hold their slot; cancelled and rejected ones do not.

        Args:
            day: Slot date
            slot_time: Slot start time
            appointments: Appointments to check against
            exclude_id: Appointment id to ignore, used when an appointment
                moves and must not conflict with itself

        Returns:
            True if the slot is taken
        """
        for appointment in appointments:
            if exclude_id is not None and appointment.id == exclude_id:
                continue
            if appointment.date != day or appointment.time != slot_time:
                continue
            if AppointmentStatus(appointment.status) in SLOT_HOLDING_STATUSES:
                return True
        return False
