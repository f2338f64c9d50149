from datetime import date, datetime, time
from typing import Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import commit_or_raise
from app.core.errors import (
    BookingValidationError,
    CooldownActiveError,
    DuplicateActiveAppointmentError,
    InvalidTransitionError,
    NotFoundError,
    ShopClosedError,
    SlotUnavailableError,
    StoreUnavailableError,
)
from app.core.locks import (
    SlotLockManager,
    appointment_lock_key,
    client_lock_key,
    get_lock_manager,
    slot_lock_key,
)
from app.models.appointment import (
    ACTIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    BookingSource,
)
from app.schemas.appointment import ClientEligibility
from app.schemas.shop import ShopSettings
from app.services.clients import ClientKey, appointments_for, is_released
from app.services.cooldown import CooldownPolicy
from app.services.lifecycle import (
    SLOT_MOVING_EVENTS,
    Actor,
    LifecycleEvent,
    apply_transition,
    resolve_transition,
    target_slot,
)
from app.services.notification_service import Notifier, PushNotifier, dispatch
from app.services.scheduling import AvailabilityChecker, ShopCalendar
from app.services.shop import ShopService
from app.utils.validation import format_local_time

logger = structlog.get_logger(__name__)


def sort_by_slot(appointments, descending: bool = True) -> list[Appointment]:
    return sorted(appointments, key=lambda a: (a.date, a.time), reverse=descending)


class BookingService:
    """Client self-booking and operator appointment management.

    Every write re-reads the appointment set and re-runs the availability
    check while holding the locks for the slot and the appointment, then
    commits before releasing them.
    """

    def __init__(
        self,
        db: AsyncSession,
        locks: Optional[SlotLockManager] = None,
        notifier: Optional[Notifier] = None,
        cooldown_policy: Optional[CooldownPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.locks = locks or get_lock_manager()
        self.notifier = notifier or PushNotifier()
        self.cooldown_policy = cooldown_policy or CooldownPolicy(settings.COOLDOWN_DAYS)
        self.clock = clock or datetime.now
        self.shop = ShopService(db, self.locks)

    # Reads

    async def get_all_appointments(self) -> list[Appointment]:
        """Load every appointment, refreshing rows already in the session."""
        result = await self.db.execute(
            select(Appointment).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_appointment_by_uuid(self, appointment_uuid) -> Appointment:
        try:
            appointment_uuid = UUID(str(appointment_uuid))
        except ValueError:
            raise NotFoundError(f"Appointment {appointment_uuid} not found")

        result = await self.db.execute(
            select(Appointment)
            .where(Appointment.uuid == appointment_uuid)
            .execution_options(populate_existing=True)
        )
        appointment = result.scalar_one_or_none()
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_uuid} not found")
        return appointment

    async def get_client_appointment(self, appointment_uuid, client_name: str) -> Appointment:
        """Get an appointment owned by ``client_name``; others look missing."""
        appointment = await self.get_appointment_by_uuid(appointment_uuid)
        if not ClientKey.from_name(client_name).matches(appointment.client_name):
            raise NotFoundError(f"Appointment {appointment_uuid} not found")
        return appointment

    async def client_appointments(self, client_name: str) -> list[Appointment]:
        key = ClientKey.from_name(client_name)
        appointments = await self.get_all_appointments()
        return sort_by_slot(appointments_for(key, appointments))

    async def available_slots(self, day: date) -> list[time]:
        """Slots a client can pick on ``day`` right now."""
        shop_settings = await self.shop.get_settings()
        appointments = await self.get_all_appointments()
        return ShopCalendar.available_slots(
            day, shop_settings, appointments, now=self.clock()
        )

    async def eligibility(self, client_name: str) -> ClientEligibility:
        """Report whether ``client_name`` may create a booking, and why not."""
        key = ClientKey.from_name(client_name)
        shop_settings = await self.shop.get_settings()
        appointments = await self.get_all_appointments()

        reason = self._booking_block_reason(key, shop_settings, appointments)
        return ClientEligibility(
            client_name=str(key),
            can_book=reason is None,
            reason=reason.kind.value if reason else None,
            is_released=is_released(key, shop_settings.released_clients),
            has_active_appointment=self._has_active(key, appointments),
            cooldown_ends_on=self.cooldown_policy.cooldown_ends_on(
                str(key), appointments, shop_settings.released_clients
            ),
        )

    # Client booking

    async def create_booking(
        self,
        client_name: str,
        slot_date: date,
        slot_time: time,
        phone: Optional[str] = None,
        notification_target: Optional[str] = None,
    ) -> Appointment:
        """Create a pending appointment for a client."""
        key = ClientKey.from_name(client_name)
        self._require_future(slot_date, slot_time)

        async with self.locks.acquire(
            slot_lock_key(slot_date, slot_time), client_lock_key(key)
        ):
            shop_settings = await self.shop.get_settings(fresh=True)
            appointments = await self.get_all_appointments()

            reason = self._booking_block_reason(key, shop_settings, appointments)
            if reason is not None:
                logger.info(
                    "Booking declined", client=str(key), reason=reason.kind.value
                )
                raise reason
            self._require_candidate(slot_date, slot_time, shop_settings)
            self._require_free(slot_date, slot_time, appointments)

            appointment = Appointment(
                client_name=str(key),
                client_key=str(key),
                phone=phone,
                date=slot_date,
                time=slot_time,
                status=AppointmentStatus.PENDING.value,
                booking_source=BookingSource.CLIENT.value,
                notification_target=notification_target,
                reschedule_count=0,
            )
            self.db.add(appointment)
            await commit_or_raise(self.db)

        logger.info(
            "Appointment created",
            appointment_uuid=str(appointment.uuid),
            client=str(key),
            date=slot_date.isoformat(),
            time=format_local_time(slot_time),
        )
        return appointment

    async def reschedule(
        self,
        appointment_uuid,
        slot_date: date,
        slot_time: time,
        actor: Actor,
        client_name: Optional[str] = None,
        admin_note: Optional[str] = None,
    ) -> Appointment:
        """Move an appointment to a new slot, pending operator re-approval.

        From suggestion_sent this is the client's counter-proposal.
        """
        appointment = await self._load_for_actor(appointment_uuid, actor, client_name)
        event = (
            LifecycleEvent.COUNTER_PROPOSE
            if AppointmentStatus(appointment.status) == AppointmentStatus.SUGGESTION_SENT
            else LifecycleEvent.RESCHEDULE
        )
        return await self._transition(
            appointment_uuid,
            event,
            actor,
            client_name=client_name,
            slot_date=slot_date,
            slot_time=slot_time,
            admin_note=admin_note,
        )

    async def cancel(self, appointment_uuid, client_name: str) -> Appointment:
        return await self._transition(
            appointment_uuid, LifecycleEvent.CANCEL, Actor.CLIENT, client_name=client_name
        )

    async def accept_suggestion(self, appointment_uuid, client_name: str) -> Appointment:
        return await self._transition(
            appointment_uuid,
            LifecycleEvent.ACCEPT_SUGGESTION,
            Actor.CLIENT,
            client_name=client_name,
        )

    async def decline_suggestion(self, appointment_uuid, client_name: str) -> Appointment:
        return await self._transition(
            appointment_uuid,
            LifecycleEvent.DECLINE_SUGGESTION,
            Actor.CLIENT,
            client_name=client_name,
        )

    # Operator actions

    async def manual_book(
        self,
        client_name: str,
        slot_date: date,
        slot_time: time,
        phone: Optional[str] = None,
        notification_target: Optional[str] = None,
        admin_note: Optional[str] = None,
        initial_status: AppointmentStatus = AppointmentStatus.ACCEPTED,
    ) -> Appointment:
        """Book on behalf of a client, skipping cooldown and active checks."""
        if initial_status not in (AppointmentStatus.ACCEPTED, AppointmentStatus.PENDING):
            raise BookingValidationError(
                "Manual bookings start as accepted or pending"
            )
        key = ClientKey.from_name(client_name)

        async with self.locks.acquire(slot_lock_key(slot_date, slot_time)):
            appointments = await self.get_all_appointments()
            self._require_free(slot_date, slot_time, appointments)

            appointment = Appointment(
                client_name=str(key),
                client_key=str(key),
                phone=phone,
                date=slot_date,
                time=slot_time,
                status=initial_status.value,
                booking_source=BookingSource.OPERATOR.value,
                admin_note=admin_note,
                notification_target=notification_target,
                reschedule_count=0,
            )
            self.db.add(appointment)
            await commit_or_raise(self.db)

        logger.info(
            "Manual appointment created",
            appointment_uuid=str(appointment.uuid),
            client=str(key),
            status=initial_status.value,
        )
        return appointment

    async def accept(self, appointment_uuid) -> Appointment:
        return await self._transition(appointment_uuid, LifecycleEvent.ACCEPT, Actor.OPERATOR)

    async def reject(self, appointment_uuid, admin_note: Optional[str] = None) -> Appointment:
        return await self._transition(
            appointment_uuid, LifecycleEvent.REJECT, Actor.OPERATOR, admin_note=admin_note
        )

    async def suggest(
        self,
        appointment_uuid,
        slot_date: date,
        slot_time: time,
        admin_note: Optional[str] = None,
    ) -> Appointment:
        """Propose an alternate slot to the client."""
        return await self._transition(
            appointment_uuid,
            LifecycleEvent.SUGGEST,
            Actor.OPERATOR,
            slot_date=slot_date,
            slot_time=slot_time,
            admin_note=admin_note,
        )

    async def complete(self, appointment_uuid) -> Appointment:
        return await self._transition(appointment_uuid, LifecycleEvent.COMPLETE, Actor.OPERATOR)

    # Helper methods

    async def _load_for_actor(
        self, appointment_uuid, actor: Actor, client_name: Optional[str]
    ) -> Appointment:
        if actor == Actor.CLIENT:
            if not client_name:
                raise BookingValidationError("client_name is required")
            return await self.get_client_appointment(appointment_uuid, client_name)
        return await self.get_appointment_by_uuid(appointment_uuid)

    async def _transition(
        self,
        appointment_uuid,
        event: LifecycleEvent,
        actor: Actor,
        client_name: Optional[str] = None,
        slot_date: Optional[date] = None,
        slot_time: Optional[time] = None,
        admin_note: Optional[str] = None,
    ) -> Appointment:
        appointment = await self._load_for_actor(appointment_uuid, actor, client_name)
        resolve_transition(AppointmentStatus(appointment.status), event, actor)
        planned_slot = self._planned_slot(appointment, event, slot_date, slot_time)

        # Moving a completed visit makes it active again, so it competes with
        # the client's other appointments like a new booking does
        reactivates = AppointmentStatus(appointment.status) == AppointmentStatus.COMPLETED
        key = ClientKey.from_name(appointment.client_name)

        keys = [appointment_lock_key(appointment.uuid)]
        if planned_slot is not None:
            keys.append(slot_lock_key(*planned_slot))
        if reactivates:
            keys.append(client_lock_key(key))

        async with self.locks.acquire(*keys):
            # Re-read under the lock; the snapshot above may be stale
            appointment = await self._load_for_actor(appointment_uuid, actor, client_name)
            current = AppointmentStatus(appointment.status)
            resolve_transition(current, event, actor)
            slot = self._planned_slot(appointment, event, slot_date, slot_time)
            if slot != planned_slot or (current == AppointmentStatus.COMPLETED) != reactivates:
                raise StoreUnavailableError(
                    "The appointment changed while processing, try again"
                )

            appointments = await self.get_all_appointments()
            if reactivates and self._has_active(key, appointments, exclude_id=appointment.id):
                logger.info(
                    "Reschedule declined",
                    appointment_uuid=str(appointment.uuid),
                    client=str(key),
                    reason=DuplicateActiveAppointmentError.kind.value,
                )
                raise DuplicateActiveAppointmentError()

            if slot is not None:
                if actor == Actor.CLIENT and event in SLOT_MOVING_EVENTS:
                    self._require_future(*slot)
                    shop_settings = await self.shop.get_settings(fresh=True)
                    self._require_candidate(*slot, shop_settings)
                self._require_free(*slot, appointments, exclude_id=appointment.id)

            try:
                result = apply_transition(
                    appointment,
                    event,
                    actor,
                    slot_date=slot_date,
                    slot_time=slot_time,
                    now=self.clock(),
                )
            except Exception:
                # Drop whatever was applied to the row before the failure
                await self.db.rollback()
                raise
            if admin_note is not None:
                appointment.admin_note = admin_note
            await commit_or_raise(self.db)

        dispatch(self.notifier, result.notification)
        return appointment

    @staticmethod
    def _planned_slot(
        appointment: Appointment,
        event: LifecycleEvent,
        slot_date: Optional[date],
        slot_time: Optional[time],
    ) -> Optional[tuple[date, time]]:
        slot = target_slot(appointment, event, slot_date, slot_time)
        if slot is not None and slot[1] is None:
            raise InvalidTransitionError("There is no suggested time to accept")
        return slot

    def _booking_block_reason(
        self, key: ClientKey, shop_settings: ShopSettings, appointments: list
    ):
        """The error that would decline a new booking, or None."""
        if not shop_settings.is_open:
            return ShopClosedError()
        if not self.cooldown_policy.can_book(
            str(key), appointments, shop_settings.released_clients, now=self.clock()
        ):
            return CooldownActiveError()
        if self._has_active(key, appointments):
            return DuplicateActiveAppointmentError()
        return None

    @staticmethod
    def _has_active(
        key: ClientKey, appointments: list, exclude_id: Optional[int] = None
    ) -> bool:
        return any(
            AppointmentStatus(a.status) in ACTIVE_STATUSES
            for a in appointments_for(key, appointments)
            if exclude_id is None or a.id != exclude_id
        )

    def _require_future(self, slot_date: date, slot_time: time) -> None:
        if datetime.combine(slot_date, slot_time) <= self.clock():
            raise BookingValidationError("The requested slot is in the past")

    @staticmethod
    def _require_candidate(
        slot_date: date, slot_time: time, shop_settings: ShopSettings
    ) -> None:
        if not ShopCalendar.is_candidate(slot_date, slot_time, shop_settings):
            raise SlotUnavailableError(
                f"{slot_date.isoformat()} {format_local_time(slot_time)} "
                "is outside the shop's schedule"
            )

    @staticmethod
    def _require_free(
        slot_date: date,
        slot_time: time,
        appointments: list,
        exclude_id: Optional[int] = None,
    ) -> None:
        if AvailabilityChecker.is_occupied(slot_date, slot_time, appointments, exclude_id):
            logger.info(
                "Slot already taken",
                date=slot_date.isoformat(),
                time=format_local_time(slot_time),
            )
            raise SlotUnavailableError(
                f"{slot_date.isoformat()} {format_local_time(slot_time)} is already taken"
            )
