from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps.services import get_booking_service, get_shop_service
from app.schemas.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentList,
    AvailableSlots,
    ClientAction,
    ClientEligibility,
    ClientReschedule,
)
from app.schemas.shop import ShopStatus
from app.services.appointment import BookingService
from app.services.lifecycle import Actor
from app.services.shop import ShopService
from app.utils.validation import format_local_time, parse_iso_date

router = APIRouter()


@router.get("/shop", response_model=ShopStatus)
async def get_shop_status(shop: ShopService = Depends(get_shop_service)):
    """Whether the shop is taking bookings, and its hours."""
    config = await shop.get_config()
    return ShopStatus(
        is_open=config.is_open,
        open_time=format_local_time(config.open_time),
        close_time=format_local_time(config.close_time),
        interval_minutes=config.interval_minutes,
        work_days=list(config.work_days),
    )


@router.get("/slots", response_model=AvailableSlots)
async def get_available_slots(
    date: str = Query(..., description="Date as YYYY-MM-DD"),
    service: BookingService = Depends(get_booking_service),
):
    """List the free slots a client can book on a date."""
    day = parse_iso_date(date)
    slots = await service.available_slots(day)
    return AvailableSlots(date=day, slots=[format_local_time(s) for s in slots])


@router.get("/eligibility", response_model=ClientEligibility)
async def get_eligibility(
    client_name: str = Query(..., min_length=1),
    service: BookingService = Depends(get_booking_service),
):
    """Check whether a client may create a new booking."""
    return await service.eligibility(client_name)


@router.get("/appointments", response_model=AppointmentList)
async def get_my_appointments(
    client_name: str = Query(..., min_length=1),
    service: BookingService = Depends(get_booking_service),
):
    """A client's own appointments, newest first."""
    appointments = await service.client_appointments(client_name)
    return AppointmentList(appointments=appointments, total_count=len(appointments))


@router.post("/appointments", response_model=Appointment, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking: AppointmentCreate,
    service: BookingService = Depends(get_booking_service),
):
    """Request an appointment; it starts pending operator approval."""
    return await service.create_booking(
        booking.client_name,
        booking.date,
        booking.time,
        phone=booking.phone,
        notification_target=booking.notification_target,
    )


@router.post("/appointments/{appointment_uuid}/cancel", response_model=Appointment)
async def cancel_appointment(
    appointment_uuid: UUID,
    action: ClientAction,
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a pending or accepted appointment."""
    return await service.cancel(appointment_uuid, action.client_name)


@router.post("/appointments/{appointment_uuid}/reschedule", response_model=Appointment)
async def reschedule_appointment(
    appointment_uuid: UUID,
    reschedule: ClientReschedule,
    service: BookingService = Depends(get_booking_service),
):
    """Move an appointment to another slot, pending re-approval."""
    return await service.reschedule(
        appointment_uuid,
        reschedule.date,
        reschedule.time,
        Actor.CLIENT,
        client_name=reschedule.client_name,
    )


@router.post("/appointments/{appointment_uuid}/suggestion/accept", response_model=Appointment)
async def accept_suggestion(
    appointment_uuid: UUID,
    action: ClientAction,
    service: BookingService = Depends(get_booking_service),
):
    """Accept the time suggested by the operator."""
    return await service.accept_suggestion(appointment_uuid, action.client_name)


@router.post("/appointments/{appointment_uuid}/suggestion/decline", response_model=Appointment)
async def decline_suggestion(
    appointment_uuid: UUID,
    action: ClientAction,
    service: BookingService = Depends(get_booking_service),
):
    """Decline the suggested time and wait for the operator."""
    return await service.decline_suggestion(appointment_uuid, action.client_name)
