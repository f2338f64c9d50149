"""Appointment status state machine.

``TRANSITIONS`` is the single source of truth for which events are valid
in which status, who may trigger them, and which notification they emit.
"""

import enum
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

import structlog

from app.core.errors import BookingValidationError, InvalidTransitionError
from app.models.appointment import AppointmentStatus

logger = structlog.get_logger(__name__)


class Actor(str, enum.Enum):
    CLIENT = "client"
    OPERATOR = "operator"


class LifecycleEvent(str, enum.Enum):
    ACCEPT = "accept"
    SUGGEST = "suggest"
    REJECT = "reject"
    ACCEPT_SUGGESTION = "accept_suggestion"
    DECLINE_SUGGESTION = "decline_suggestion"
    COUNTER_PROPOSE = "counter_propose"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"


class NotificationKey(str, enum.Enum):
    ACCEPTED = "accepted"
    NEW_SUGGESTION = "new_suggestion"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Transition:
    target: AppointmentStatus
    actors: frozenset
    notify: Optional[NotificationKey] = None


_CLIENT = frozenset({Actor.CLIENT})
_OPERATOR = frozenset({Actor.OPERATOR})
_ANYONE = frozenset({Actor.CLIENT, Actor.OPERATOR})

S = AppointmentStatus
E = LifecycleEvent

TRANSITIONS: dict[tuple[AppointmentStatus, LifecycleEvent], Transition] = {
    # Operator review of a new or re-submitted request
    (S.PENDING, E.ACCEPT): Transition(S.ACCEPTED, _OPERATOR, NotificationKey.ACCEPTED),
    (S.WAITING_APPROVAL, E.ACCEPT): Transition(S.ACCEPTED, _OPERATOR, NotificationKey.ACCEPTED),
    (S.PENDING, E.SUGGEST): Transition(S.SUGGESTION_SENT, _OPERATOR, NotificationKey.NEW_SUGGESTION),
    (S.WAITING_APPROVAL, E.SUGGEST): Transition(S.SUGGESTION_SENT, _OPERATOR, NotificationKey.NEW_SUGGESTION),
    (S.PENDING, E.REJECT): Transition(S.CANCELLED, _OPERATOR, NotificationKey.REJECTED),
    (S.WAITING_APPROVAL, E.REJECT): Transition(S.CANCELLED, _OPERATOR, NotificationKey.REJECTED),
    # Client answer to an operator suggestion
    (S.SUGGESTION_SENT, E.ACCEPT_SUGGESTION): Transition(S.ACCEPTED, _CLIENT, NotificationKey.ACCEPTED),
    (S.SUGGESTION_SENT, E.DECLINE_SUGGESTION): Transition(S.WAITING_APPROVAL, _CLIENT),
    (S.SUGGESTION_SENT, E.COUNTER_PROPOSE): Transition(S.WAITING_APPROVAL, _CLIENT),
    # Cancellation and rescheduling
    (S.PENDING, E.CANCEL): Transition(S.CANCELLED, _CLIENT),
    (S.ACCEPTED, E.CANCEL): Transition(S.CANCELLED, _CLIENT),
    (S.PENDING, E.RESCHEDULE): Transition(S.WAITING_APPROVAL, _ANYONE),
    (S.ACCEPTED, E.RESCHEDULE): Transition(S.WAITING_APPROVAL, _ANYONE),
    (S.COMPLETED, E.RESCHEDULE): Transition(S.WAITING_APPROVAL, _ANYONE),
    # Visit done
    (S.ACCEPTED, E.COMPLETE): Transition(S.COMPLETED, _OPERATOR),
}

# Events that move the appointment to a caller-supplied slot
SLOT_MOVING_EVENTS = frozenset({E.RESCHEDULE, E.COUNTER_PROPOSE})


def allowed_events(status: AppointmentStatus, actor: Optional[Actor] = None) -> set:
    return {
        event
        for (source, event), transition in TRANSITIONS.items()
        if source == status and (actor is None or actor in transition.actors)
    }


def resolve_transition(
    status: AppointmentStatus, event: LifecycleEvent, actor: Actor
) -> Transition:
    """Look up the transition for ``event`` or raise InvalidTransitionError."""
    transition = TRANSITIONS.get((status, event))
    if transition is None:
        raise InvalidTransitionError(
            f"Cannot {event.value.replace('_', ' ')} an appointment that is {status.value}"
        )
    if actor not in transition.actors:
        raise InvalidTransitionError(
            f"The {actor.value} cannot {event.value.replace('_', ' ')} this appointment"
        )
    return transition


@dataclass(frozen=True)
class NotificationIntent:
    """Decision that a status-change notification should be sent."""

    key: NotificationKey
    target: str
    appointment_uuid: str
    date: date
    time: time


@dataclass(frozen=True)
class TransitionResult:
    previous_status: AppointmentStatus
    status: AppointmentStatus
    notification: Optional[NotificationIntent] = None


def target_slot(
    appointment,
    event: LifecycleEvent,
    slot_date: Optional[date] = None,
    slot_time: Optional[time] = None,
) -> Optional[tuple[date, time]]:
    """The slot the appointment will occupy after ``event``, when it changes.

    Callers run the availability check against this slot before applying
    the transition.
    """
    if event in SLOT_MOVING_EVENTS or event == E.SUGGEST:
        if slot_date is None or slot_time is None:
            raise BookingValidationError(f"{event.value} requires a date and a time")
        return slot_date, slot_time
    if event == E.ACCEPT_SUGGESTION:
        return (
            appointment.suggestion_date or appointment.date,
            appointment.suggestion_time,
        )
    return None


def apply_transition(
    appointment,
    event: LifecycleEvent,
    actor: Actor,
    *,
    slot_date: Optional[date] = None,
    slot_time: Optional[time] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """Validate and apply ``event`` to ``appointment`` in place.

    ``now`` is the naive local time used for the "visit has started" check.
    Availability of any new slot must already have been verified.
    """
    current = AppointmentStatus(appointment.status)
    transition = resolve_transition(current, event, actor)

    if event == E.COMPLETE:
        now = now or datetime.now()
        if appointment.starts_at > now:
            raise InvalidTransitionError(
                "An appointment can only be marked done once its time has passed"
            )

    if event == E.ACCEPT_SUGGESTION:
        if appointment.suggestion_time is None:
            raise InvalidTransitionError("There is no suggested time to accept")
        appointment.date = appointment.suggestion_date or appointment.date
        appointment.time = appointment.suggestion_time
    elif event in SLOT_MOVING_EVENTS:
        new_date, new_time = target_slot(appointment, event, slot_date, slot_time)
        appointment.date = new_date
        appointment.time = new_time
        appointment.reschedule_count = (appointment.reschedule_count or 0) + 1

    if transition.target == S.SUGGESTION_SENT:
        suggested_date, suggested_time = target_slot(appointment, event, slot_date, slot_time)
        appointment.suggestion_date = suggested_date
        appointment.suggestion_time = suggested_time
    else:
        appointment.suggestion_date = None
        appointment.suggestion_time = None

    appointment.previous_status = current.value
    appointment.status = transition.target.value
    appointment.status_changed_at = datetime.now(timezone.utc)

    notification = None
    if transition.notify is not None and appointment.notification_target:
        notification = NotificationIntent(
            key=transition.notify,
            target=appointment.notification_target,
            appointment_uuid=str(appointment.uuid),
            date=appointment.suggestion_date or appointment.date,
            time=appointment.suggestion_time or appointment.time,
        )

    logger.info(
        "Appointment status changed",
        appointment_uuid=str(appointment.uuid),
        lifecycle_event=event.value,
        actor=actor.value,
        from_status=current.value,
        to_status=transition.target.value,
    )
    return TransitionResult(
        previous_status=current,
        status=transition.target,
        notification=notification,
    )
