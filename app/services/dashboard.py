from collections import Counter
from datetime import date, datetime
from typing import Callable, Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import Appointment, AppointmentStatus
from app.schemas.appointment import AppointmentStats, DashboardTab
from app.services.appointment import sort_by_slot

logger = structlog.get_logger(__name__)

_HIDDEN_FROM_TODAY = {AppointmentStatus.CANCELLED, AppointmentStatus.REJECTED}
_AWAITING_OPERATOR = {AppointmentStatus.PENDING, AppointmentStatus.WAITING_APPROVAL}
_UPCOMING = {AppointmentStatus.ACCEPTED, AppointmentStatus.PENDING}


def filter_tab(appointments: Iterable, tab: DashboardTab, today: date) -> list:
    """Select the appointments shown on a dashboard tab, newest first."""
    if tab == DashboardTab.PENDING:
        selected = [a for a in appointments if AppointmentStatus(a.status) in _AWAITING_OPERATOR]
    elif tab == DashboardTab.TODAY:
        selected = [
            a
            for a in appointments
            if a.date == today and AppointmentStatus(a.status) not in _HIDDEN_FROM_TODAY
        ]
    elif tab == DashboardTab.UPCOMING:
        selected = [
            a for a in appointments if a.date >= today and AppointmentStatus(a.status) in _UPCOMING
        ]
    else:
        selected = list(appointments)
    return sort_by_slot(selected)


def next_upcoming(appointments: Iterable, now: datetime):
    """Earliest accepted appointment that has not started yet."""
    upcoming = [
        a
        for a in appointments
        if AppointmentStatus(a.status) == AppointmentStatus.ACCEPTED and a.starts_at > now
    ]
    ordered = sort_by_slot(upcoming, descending=False)
    return ordered[0] if ordered else None


def compute_stats(appointments: Iterable, today: date) -> AppointmentStats:
    appointments = list(appointments)
    by_status = Counter(a.status for a in appointments)
    return AppointmentStats(
        pending_count=by_status.get(AppointmentStatus.PENDING.value, 0),
        today_count=sum(1 for a in appointments if a.date == today),
        by_status={status.value: by_status.get(status.value, 0) for status in AppointmentStatus},
    )


class DashboardService:
    """Operator views over the full appointment history."""

    def __init__(self, db: AsyncSession, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.clock = clock or datetime.now

    async def _all(self) -> list[Appointment]:
        result = await self.db.execute(
            select(Appointment).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_appointments(self, tab: DashboardTab = DashboardTab.ALL) -> list[Appointment]:
        appointments = filter_tab(await self._all(), tab, self.clock().date())
        logger.debug("Dashboard listing", tab=tab.value, count=len(appointments))
        return appointments

    async def next_appointment(self) -> Optional[Appointment]:
        return next_upcoming(await self._all(), self.clock())

    async def stats(self) -> AppointmentStats:
        return compute_stats(await self._all(), self.clock().date())
