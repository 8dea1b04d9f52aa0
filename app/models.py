from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

USER_ROLES = ("pet_owner", "vet", "admin")
SLOT_TYPES = ("regular", "emergency")
APPOINTMENT_MODES = ("in_person", "video")
APPOINTMENT_STATUSES = ("scheduled", "completed", "cancelled")
HEALTH_RECORD_TYPES = ("checkup", "vaccination", "treatment", "surgery", "other")


def one_of(column: str, values: tuple[str, ...], name: str) -> CheckConstraint:
    """CHECK constraint limiting a string column to a fixed set of values"""
    allowed = ", ".join(f"'{value}'" for value in values)
    return CheckConstraint(f"{column} IN ({allowed})", name=name)


class User(Base):
    __tablename__ = "users"
    __table_args__ = (one_of("role", USER_ROLES, "ck_user_role"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    role = Column(String(20), default="pet_owner", nullable=False)  # pet_owner, vet, admin
    created_at = Column(DateTime, server_default=func.now())

    pets = relationship("Pet", back_populates="owner", cascade="all, delete-orphan")
    slots = relationship("AppointmentSlot", back_populates="veterinarian")


class Pet(Base):
    __tablename__ = "pets"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    species = Column(String(50), nullable=False)  # dog, cat, bird...
    breed = Column(String(100), nullable=True)
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    owner = relationship("User", back_populates="pets")
    appointments = relationship("Appointment", back_populates="pet")
    health_records = relationship(
        "HealthRecord", back_populates="pet", cascade="all, delete-orphan"
    )


class AppointmentSlot(Base):
    """Bookable time window for a veterinarian on a given day"""

    __tablename__ = "appointment_slots"
    __table_args__ = (
        CheckConstraint("current_bookings >= 0", name="ck_slot_bookings_non_negative"),
        CheckConstraint("current_bookings <= max_bookings", name="ck_slot_not_overbooked"),
        one_of("slot_type", SLOT_TYPES, "ck_slot_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    veterinarian_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    slot_type = Column(String(20), default="regular", nullable=False)  # regular, emergency
    max_bookings = Column(Integer, default=1, nullable=False)
    current_bookings = Column(Integer, default=0, nullable=False)
    # Kept equal to current_bookings < max_bookings on every reservation
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    veterinarian = relationship("User", back_populates="slots")
    appointments = relationship("Appointment", back_populates="slot")

    @property
    def time_range(self) -> str:
        return f"{self.start_time} - {self.end_time}"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        one_of("appointment_mode", APPOINTMENT_MODES, "ck_appointment_mode"),
        one_of("status", APPOINTMENT_STATUSES, "ck_appointment_status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vet_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("appointment_slots.id"), nullable=True)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    service_type = Column(String(100), nullable=False)  # checkup, vaccination, grooming...
    appointment_mode = Column(String(20), default="in_person", nullable=False)  # in_person, video
    status = Column(String(20), default="scheduled", nullable=False)  # scheduled, completed, cancelled
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    pet = relationship("Pet", back_populates="appointments")
    owner = relationship("User", foreign_keys=[owner_id])
    vet = relationship("User", foreign_keys=[vet_id])
    slot = relationship("AppointmentSlot", back_populates="appointments")
    video_consultation = relationship(
        "VideoConsultation", back_populates="appointment", uselist=False
    )


class VideoConsultation(Base):
    __tablename__ = "video_consultations"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False)
    pet_owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    veterinarian_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    scheduled_start = Column(DateTime, nullable=False)
    status = Column(String(20), default="scheduled", nullable=False)
    session_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="video_consultation")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)  # appointment, payment, reminder
    data = Column(JSON, default=dict, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class AnalyticsEvent(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    data = Column(JSON, default=dict, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class HealthRecord(Base):
    """Entry in a pet's medical history"""

    __tablename__ = "health_records"
    __table_args__ = (one_of("record_type", HEALTH_RECORD_TYPES, "ck_health_record_type"),)

    id = Column(Integer, primary_key=True, index=True)
    pet_id = Column(Integer, ForeignKey("pets.id"), nullable=False, index=True)
    record_type = Column(String(20), default="checkup", nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    record_date = Column(Date, nullable=False)
    vet_id = Column(Integer, ForeignKey("users.id"), nullable=True)  # Attending vet, if known
    created_at = Column(DateTime, server_default=func.now())

    pet = relationship("Pet", back_populates="health_records")
