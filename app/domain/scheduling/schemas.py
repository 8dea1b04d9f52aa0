"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class BookAppointmentRequest(BaseModel):
    """Schema for booking an appointment against a slot"""

    pet_id: int
    vet_id: int
    slot_id: int
    service_type: str
    date: date
    appointment_type: Literal["in_person", "video"] = "in_person"
    notes: Optional[str] = None

    @field_validator("service_type")
    @classmethod
    def validate_service_type(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("service_type is required")
        return v


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    veterinarian_id: int
    date: date
    start_time: str
    end_time: str
    slot_type: str
    max_bookings: int
    current_bookings: int
    is_available: bool


class SlotsResponse(BaseModel):
    slots: list[SlotResponse]


class AppointmentResponse(BaseModel):
    id: int
    pet_id: int
    owner_id: int
    vet_id: int
    slot_id: Optional[int] = None
    scheduled_at: datetime
    service_type: str
    appointment_mode: str
    status: str
    notes: Optional[str] = None
    time: Optional[str] = None  # "HH:MM - HH:MM"
    pet_name: Optional[str] = None
    vet_name: Optional[str] = None
    session_url: Optional[str] = None


class BookAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    message: str


class AppointmentsResponse(BaseModel):
    appointments: list[AppointmentResponse]


class AppointmentDetailResponse(BaseModel):
    appointment: AppointmentResponse
