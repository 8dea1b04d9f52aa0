"""Scheduling repository - Database operations for pets, slots and appointments"""

from datetime import date
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from ...models import Appointment, AppointmentSlot, HealthRecord, Pet, User, VideoConsultation


class PetRepository:
    """Repository for pet database operations"""

    @staticmethod
    def get_owned_pet(db: Session, pet_id: int, owner_id: int) -> Optional[Pet]:
        """Get a pet only if it belongs to the given owner"""
        return db.query(Pet).filter(Pet.id == pet_id, Pet.owner_id == owner_id).first()

    @staticmethod
    def list_pets(db: Session, owner_id: int) -> list[Pet]:
        return db.query(Pet).filter(Pet.owner_id == owner_id).order_by(Pet.name).all()

    @staticmethod
    def create_pet(db: Session, owner_id: int, **pet_data) -> Pet:
        pet = Pet(owner_id=owner_id, **pet_data)
        db.add(pet)
        db.commit()
        db.refresh(pet)
        return pet

    @staticmethod
    def update_pet(db: Session, pet: Pet, **changes) -> Pet:
        for field, value in changes.items():
            setattr(pet, field, value)
        db.commit()
        db.refresh(pet)
        return pet

    @staticmethod
    def delete_pet(db: Session, pet: Pet) -> None:
        """Delete a pet and its health records"""
        db.delete(pet)
        db.commit()

    @staticmethod
    def count_appointments(db: Session, pet_id: int, status: Optional[str] = None) -> int:
        query = db.query(Appointment).filter(Appointment.pet_id == pet_id)
        if status:
            query = query.filter(Appointment.status == status)
        return query.count()

    @staticmethod
    def list_health_records(db: Session, pet_id: int) -> list[HealthRecord]:
        """Newest first by record date"""
        return (
            db.query(HealthRecord)
            .filter(HealthRecord.pet_id == pet_id)
            .order_by(HealthRecord.record_date.desc(), HealthRecord.id.desc())
            .all()
        )

    @staticmethod
    def add_health_record(db: Session, pet_id: int, **record_data) -> HealthRecord:
        record = HealthRecord(pet_id=pet_id, **record_data)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def get_vet(db: Session, vet_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == vet_id, User.role == "vet").first()


class SlotRepository:
    """Repository for appointment slot operations"""

    @staticmethod
    def list_slots(db: Session, vet_id: int, day: date) -> list[AppointmentSlot]:
        """Slots for a veterinarian on a day, earliest first"""
        return (
            db.query(AppointmentSlot)
            .filter(AppointmentSlot.veterinarian_id == vet_id, AppointmentSlot.date == day)
            .order_by(AppointmentSlot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_provider_slot(
        db: Session, slot_id: int, vet_id: int, day: date, lock: bool = False
    ) -> Optional[AppointmentSlot]:
        """
        Get a slot matching id, provider and date.
        With lock=True the row is read FOR UPDATE (ignored by SQLite).
        """
        query = db.query(AppointmentSlot).filter(
            AppointmentSlot.id == slot_id,
            AppointmentSlot.veterinarian_id == vet_id,
            AppointmentSlot.date == day,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def reserve_capacity(db: Session, slot_id: int) -> bool:
        """
        Atomically take one booking unit from a slot.

        The WHERE clause is the compare-and-swap: the row only changes while
        capacity remains, so concurrent callers racing for the last unit
        cannot both succeed. Does not commit.

        Returns:
            True if a unit was reserved, False if the slot was already full
        """
        result = db.execute(
            update(AppointmentSlot)
            .where(
                AppointmentSlot.id == slot_id,
                AppointmentSlot.current_bookings < AppointmentSlot.max_bookings,
            )
            .values(
                current_bookings=AppointmentSlot.current_bookings + 1,
                is_available=(AppointmentSlot.current_bookings + 1) < AppointmentSlot.max_bookings,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        """Stage a new appointment in the current transaction (flushes, does not commit)"""
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def _with_relations(query):
        return query.options(
            joinedload(Appointment.pet),
            joinedload(Appointment.vet),
            joinedload(Appointment.slot),
            joinedload(Appointment.video_consultation),
        )

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        return AppointmentRepository._with_relations(query).first()

    @staticmethod
    def list_for_owner(db: Session, owner_id: int) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.owner_id == owner_id)
        return AppointmentRepository._with_relations(query).order_by(Appointment.scheduled_at).all()

    @staticmethod
    def list_for_vet(db: Session, vet_id: int) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.vet_id == vet_id)
        return AppointmentRepository._with_relations(query).order_by(Appointment.scheduled_at).all()

    @staticmethod
    def list_all(db: Session) -> list[Appointment]:
        query = db.query(Appointment)
        return AppointmentRepository._with_relations(query).order_by(Appointment.scheduled_at).all()

    @staticmethod
    def create_video_consultation(db: Session, base_url: str, **consultation_data) -> VideoConsultation:
        """
        Create a video session and assign its URL.
        The URL embeds the row id, so the row is flushed before the URL is set.
        """
        consultation = VideoConsultation(**consultation_data)
        db.add(consultation)
        db.flush()
        consultation.session_url = f"{base_url.rstrip('/')}/session/{consultation.id}"
        db.commit()
        db.refresh(consultation)
        return consultation
