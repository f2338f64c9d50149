import math
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from app.models.appointment import AppointmentStatus
from app.services.clients import ClientKey, appointments_for, is_released

COOLDOWN_DAYS = 10

_DAY_SECONDS = 24 * 60 * 60


def elapsed_days(since: date, now: datetime) -> int:
    """Whole days between ``now`` and local midnight of ``since``, rounded up."""
    start = datetime.combine(since, datetime.min.time())
    seconds = abs((now - start).total_seconds())
    return math.ceil(seconds / _DAY_SECONDS)


class CooldownPolicy:
    """Throttles repeat bookings after a completed visit.

    A client may book again once ``cooldown_days`` have elapsed since their
    most recent completed appointment, or at any time while they are on the
    release list.
    """

    def __init__(self, cooldown_days: int = COOLDOWN_DAYS):
        self.cooldown_days = cooldown_days

    @staticmethod
    def last_completed(key: ClientKey, appointments: Iterable):
        completed = [
            a
            for a in appointments_for(key, appointments)
            if AppointmentStatus(a.status) == AppointmentStatus.COMPLETED
        ]
        if not completed:
            return None
        return max(completed, key=lambda a: a.date)

    def can_book(
        self,
        client_name: str,
        appointments: Iterable,
        released_clients: Iterable[str],
        now: Optional[datetime] = None,
    ) -> bool:
        key = ClientKey.from_name(client_name)
        if is_released(key, released_clients):
            return True

        last = self.last_completed(key, appointments)
        if last is None:
            return True

        now = now or datetime.now()
        return elapsed_days(last.date, now) >= self.cooldown_days

    def cooldown_ends_on(
        self,
        client_name: str,
        appointments: Iterable,
        released_clients: Iterable[str],
    ) -> Optional[date]:
        """First date on which the client may book again, if restricted."""
        key = ClientKey.from_name(client_name)
        if is_released(key, released_clients):
            return None
        last = self.last_completed(key, appointments)
        if last is None:
            return None
        return last.date + timedelta(days=self.cooldown_days)
