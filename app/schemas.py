from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class MessageResponse(BaseModel):
    message: str


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: Optional[str]
    email: str
    phone_number: Optional[str]
    created_at: Optional[datetime]


class VeterinariansResponse(BaseModel):
    veterinarians: list[UserSummary]


# Pet Schemas
class PetCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    species: str = Field(..., min_length=1, max_length=50)
    breed: Optional[str] = Field(default=None, max_length=100)
    birth_date: Optional[date] = None


class PetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    name: str
    species: str
    breed: Optional[str]
    birth_date: Optional[date]
    created_at: Optional[datetime]


class PetsResponse(BaseModel):
    pets: list[PetResponse]


class PetUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged"""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    species: Optional[str] = Field(default=None, min_length=1, max_length=50)
    breed: Optional[str] = Field(default=None, max_length=100)
    birth_date: Optional[date] = None


class PetDetailResponse(BaseModel):
    pet: PetResponse


# Health Record Schemas
class HealthRecordCreate(BaseModel):
    record_type: Literal["checkup", "vaccination", "treatment", "surgery", "other"] = "checkup"
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    record_date: date
    vet_id: Optional[int] = None


class HealthRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    pet_id: int
    record_type: str
    title: str
    description: Optional[str]
    record_date: date
    vet_id: Optional[int]
    created_at: Optional[datetime]


class HealthRecordDetailResponse(BaseModel):
    health_record: HealthRecordResponse


class PetHealthResponse(BaseModel):
    pet: PetResponse
    health_records: list[HealthRecordResponse]
    last_checkup: Optional[date] = None


# Notification Schemas
class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: str
    data: Optional[dict[str, Any]]
    read: bool
    created_at: Optional[datetime]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class NotificationsResponse(BaseModel):
    notifications: list[NotificationResponse]
    pagination: Pagination


class NotificationsUpdate(BaseModel):
    notification_ids: list[int] = Field(..., min_length=1)
    mark_as_read: bool = True
