"""Scheduling router - FastAPI endpoints for slots and appointment booking"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...shared.exceptions import ValidationError
from ...shared.validators import parse_date
from .schemas import (
    AppointmentDetailResponse,
    AppointmentsResponse,
    BookAppointmentRequest,
    BookAppointmentResponse,
    SlotResponse,
    SlotsResponse,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.get("/slots", response_model=SlotsResponse)
async def list_slots(
    vet_id: int,
    date: str,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Get a veterinarian's slots for a day, ordered by start time"""
    try:
        day = parse_date(date)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    slots = service.list_slots(vet_id, day)
    return {"slots": [SlotResponse.model_validate(s) for s in slots]}


@router.post("/book", response_model=BookAppointmentResponse)
async def book_appointment(
    body: BookAppointmentRequest,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Book an appointment against an available slot"""
    appointment = service.book_appointment(user, body)
    return {"appointment": appointment, "message": "Appointment booked successfully"}


@router.get("", response_model=AppointmentsResponse)
async def list_appointments(
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """List appointments visible to the current user"""
    return {"appointments": service.list_appointments(user)}


@router.get("/{appointment_id}", response_model=AppointmentDetailResponse)
async def get_appointment(
    appointment_id: int,
    user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Get a single appointment"""
    return {"appointment": service.get_appointment(user, appointment_id)}
