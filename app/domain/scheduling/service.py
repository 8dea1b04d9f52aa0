"""Booking service - Business logic for slot reservation and appointments"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import VIDEO_SESSION_BASE_URL
from ...models import Appointment, AppointmentSlot, User
from ...services.notification_service import (
    record_analytics_event,
    send_appointment_booked_notifications,
)
from ...shared.exceptions import ConflictError, NotFoundError, StoreError
from ...shared.validators import combine_slot_datetime
from .repository import AppointmentRepository, PetRepository, SlotRepository
from .schemas import AppointmentResponse, BookAppointmentRequest

logger = logging.getLogger(__name__)


def serialize_appointment(
    appointment: Appointment, slot: Optional[AppointmentSlot] = None
) -> AppointmentResponse:
    """Flatten an appointment and its relations for API responses"""
    slot = slot or appointment.slot
    video = appointment.video_consultation
    vet = appointment.vet
    return AppointmentResponse(
        id=appointment.id,
        pet_id=appointment.pet_id,
        owner_id=appointment.owner_id,
        vet_id=appointment.vet_id,
        slot_id=appointment.slot_id,
        scheduled_at=appointment.scheduled_at,
        service_type=appointment.service_type,
        appointment_mode=appointment.appointment_mode,
        status=appointment.status,
        notes=appointment.notes,
        time=slot.time_range if slot else None,
        pet_name=appointment.pet.name if appointment.pet else None,
        vet_name=(vet.full_name or vet.email) if vet else None,
        session_url=video.session_url if video else None,
    )


class BookingService:
    """Service layer for appointment booking"""

    def __init__(self, db: Session, video_base_url: str = VIDEO_SESSION_BASE_URL):
        self.db = db
        self.video_base_url = video_base_url
        self.pets = PetRepository()
        self.slots = SlotRepository()
        self.appointments = AppointmentRepository()

    def list_slots(self, vet_id: int, day: date) -> list[AppointmentSlot]:
        """Get a veterinarian's slots for a day ordered by start time"""
        return self.slots.list_slots(self.db, vet_id, day)

    def book_appointment(self, owner: User, data: BookAppointmentRequest) -> AppointmentResponse:
        """
        Reserve a slot and create the appointment.

        Ownership and slot checks fail before any write. The capacity
        reservation and the appointment insert commit together; if the slot
        filled up between the read and the reservation the whole booking is
        rolled back with ConflictError. Video session, notifications and
        analytics run afterwards and never fail the booking.
        """
        logger.info(
            f"📅 Booking request: owner={owner.id} pet={data.pet_id} vet={data.vet_id} slot={data.slot_id}"
        )

        pet = self.pets.get_owned_pet(self.db, data.pet_id, owner.id)
        if not pet:
            raise NotFoundError("Pet not found or access denied")

        slot = self.slots.get_provider_slot(
            self.db, data.slot_id, data.vet_id, data.date, lock=True
        )
        if not slot:
            self.db.rollback()
            raise NotFoundError("Time slot not found")
        if not slot.is_available:
            self.db.rollback()
            raise ConflictError("Time slot not available")

        scheduled_at = combine_slot_datetime(slot.date, slot.start_time)

        try:
            if not self.slots.reserve_capacity(self.db, slot.id):
                self.db.rollback()
                logger.warning(f"⚠️ Slot {slot.id} filled before reservation; rejecting booking")
                raise ConflictError("Time slot not available")

            appointment = self.appointments.add_appointment(
                self.db,
                pet_id=pet.id,
                owner_id=owner.id,
                vet_id=data.vet_id,
                slot_id=slot.id,
                scheduled_at=scheduled_at,
                service_type=data.service_type,
                appointment_mode=data.appointment_type,
                status="scheduled",
                notes=data.notes,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to book slot {slot.id}: {e}")
            raise StoreError("Failed to create appointment") from e

        self.db.refresh(slot)
        self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment.id} booked on slot {slot.id} "
            f"({slot.current_bookings}/{slot.max_bookings})"
        )

        self._run_side_effects(owner, appointment, slot)

        self.db.refresh(appointment)
        return serialize_appointment(appointment, slot)

    def _run_side_effects(self, owner: User, appointment: Appointment, slot: AppointmentSlot) -> None:
        if appointment.appointment_mode == "video":
            try:
                consultation = self.appointments.create_video_consultation(
                    self.db,
                    self.video_base_url,
                    appointment_id=appointment.id,
                    pet_id=appointment.pet_id,
                    pet_owner_id=owner.id,
                    veterinarian_id=appointment.vet_id,
                    scheduled_start=appointment.scheduled_at,
                    status="scheduled",
                )
                logger.info(f"🎥 Video session {consultation.id} created for appointment {appointment.id}")
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to create video session for appointment {appointment.id}: {e}")

        try:
            send_appointment_booked_notifications(self.db, appointment, owner, slot)
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to send booking notifications for appointment {appointment.id}: {e}")

        record_analytics_event(
            self.db,
            "appointment_booked",
            owner.id,
            {
                "appointment_id": appointment.id,
                "appointment_type": appointment.appointment_mode,
                "service_type": appointment.service_type,
                "vet_id": appointment.vet_id,
            },
        )

    def list_appointments(self, user: User) -> list[AppointmentResponse]:
        """Appointments visible to the user, by role"""
        if user.role == "admin":
            appointments = self.appointments.list_all(self.db)
        elif user.role == "vet":
            appointments = self.appointments.list_for_vet(self.db, user.id)
        else:
            appointments = self.appointments.list_for_owner(self.db, user.id)
        return [serialize_appointment(a) for a in appointments]

    def get_appointment(self, user: User, appointment_id: int) -> AppointmentResponse:
        appointment = self.appointments.get_appointment(self.db, appointment_id)
        if not appointment or not self._can_view(user, appointment):
            raise NotFoundError("Appointment not found")
        return serialize_appointment(appointment)

    @staticmethod
    def _can_view(user: User, appointment: Appointment) -> bool:
        return user.role == "admin" or user.id in (appointment.owner_id, appointment.vet_id)
