from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps.auth import get_current_operator
from app.api.deps.services import get_booking_service, get_dashboard_service
from app.models.appointment import AppointmentStatus
from app.schemas.appointment import (
    Appointment,
    AppointmentList,
    AppointmentStats,
    ClientHistory,
    DashboardTab,
    ManualBookingCreate,
    OperatorNote,
    OperatorReschedule,
    SuggestionCreate,
)
from app.services.appointment import BookingService
from app.services.dashboard import DashboardService
from app.services.lifecycle import Actor

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.get("/", response_model=AppointmentList)
async def get_appointments(
    tab: DashboardTab = Query(DashboardTab.ALL),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    """Dashboard listing for a tab, newest first."""
    appointments = await dashboard.list_appointments(tab)
    return AppointmentList(appointments=appointments, total_count=len(appointments))


@router.get("/next", response_model=Optional[Appointment])
async def get_next_appointment(
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    """The earliest accepted appointment that has not started yet."""
    return await dashboard.next_appointment()


@router.get("/stats", response_model=AppointmentStats)
async def get_appointment_stats(
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    return await dashboard.stats()


@router.get("/clients/{client_name}", response_model=ClientHistory)
async def get_client_history(
    client_name: str,
    service: BookingService = Depends(get_booking_service),
):
    """A client's full history with their booking eligibility."""
    return ClientHistory(
        eligibility=await service.eligibility(client_name),
        appointments=await service.client_appointments(client_name),
    )


@router.get("/{appointment_uuid}", response_model=Appointment)
async def get_appointment(
    appointment_uuid: UUID,
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_appointment_by_uuid(appointment_uuid)


@router.post("/", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def manual_booking(
    booking: ManualBookingCreate,
    accepted: bool = Query(True, description="Create as accepted instead of pending"),
    service: BookingService = Depends(get_booking_service),
):
    """Book on behalf of a client, bypassing cooldown."""
    return await service.manual_book(
        booking.client_name,
        booking.date,
        booking.time,
        phone=booking.phone,
        notification_target=booking.notification_target,
        admin_note=booking.admin_note,
        initial_status=AppointmentStatus.ACCEPTED if accepted else AppointmentStatus.PENDING,
    )


@router.post("/{appointment_uuid}/accept", response_model=Appointment)
async def accept_appointment(
    appointment_uuid: UUID,
    service: BookingService = Depends(get_booking_service),
):
    return await service.accept(appointment_uuid)


@router.post("/{appointment_uuid}/reject", response_model=Appointment)
async def reject_appointment(
    appointment_uuid: UUID,
    note: Optional[OperatorNote] = None,
    service: BookingService = Depends(get_booking_service),
):
    return await service.reject(appointment_uuid, admin_note=note.admin_note if note else None)


@router.post("/{appointment_uuid}/suggest", response_model=Appointment)
async def suggest_time(
    appointment_uuid: UUID,
    suggestion: SuggestionCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Propose an alternate slot to the client."""
    return await service.suggest(
        appointment_uuid,
        suggestion.date,
        suggestion.time,
        admin_note=suggestion.admin_note,
    )


@router.post("/{appointment_uuid}/reschedule", response_model=Appointment)
async def reschedule_appointment(
    appointment_uuid: UUID,
    reschedule: OperatorReschedule,
    service: BookingService = Depends(get_booking_service),
):
    return await service.reschedule(
        appointment_uuid,
        reschedule.date,
        reschedule.time,
        Actor.OPERATOR,
        admin_note=reschedule.admin_note,
    )


@router.post("/{appointment_uuid}/complete", response_model=Appointment)
async def complete_appointment(
    appointment_uuid: UUID,
    service: BookingService = Depends(get_booking_service),
):
    """Mark a past accepted appointment as done."""
    return await service.complete(appointment_uuid)
