import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_role
from ..database import get_db
from ..domain.scheduling.repository import PetRepository
from ..models import Pet, User
from ..schemas import (
    HealthRecordCreate,
    HealthRecordDetailResponse,
    MessageResponse,
    PetCreate,
    PetDetailResponse,
    PetHealthResponse,
    PetsResponse,
    PetUpdate,
)
from ..shared.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pets", tags=["Pets"])


def get_owned_pet_or_404(db: Session, pet_id: int, user: User) -> Pet:
    pet = PetRepository.get_owned_pet(db, pet_id, user.id)
    if not pet:
        raise NotFoundError("Pet not found")
    return pet


@router.get("", response_model=PetsResponse)
async def list_pets(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get the current user's pets"""
    return {"pets": PetRepository.list_pets(db, current_user.id)}


@router.post("", response_model=PetDetailResponse)
async def create_pet(
    body: PetCreate,
    current_user: User = Depends(require_role("pet_owner", "admin")),
    db: Session = Depends(get_db),
):
    """Register a pet for the current user"""
    pet = PetRepository.create_pet(db, current_user.id, **body.model_dump())
    logger.info(f"🐾 Pet {pet.id} registered for user {current_user.id}")
    return {"pet": pet}


@router.put("/{pet_id}", response_model=PetDetailResponse)
async def update_pet(
    pet_id: int,
    body: PetUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update one of the current user's pets"""
    pet = get_owned_pet_or_404(db, pet_id, current_user)
    pet = PetRepository.update_pet(db, pet, **body.model_dump(exclude_unset=True))
    logger.info(f"🐾 Pet {pet.id} updated by user {current_user.id}")
    return {"pet": pet}


@router.delete("/{pet_id}", response_model=MessageResponse)
async def delete_pet(
    pet_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Delete one of the current user's pets along with its health records.

    Pets with appointments are kept: scheduled visits must be cancelled
    first, and past visits stay linked to their payments.
    """
    pet = get_owned_pet_or_404(db, pet_id, current_user)
    if PetRepository.count_appointments(db, pet.id, status="scheduled"):
        raise ConflictError("Pet has scheduled appointments")
    if PetRepository.count_appointments(db, pet.id):
        raise ConflictError("Pet has appointment history and cannot be deleted")

    PetRepository.delete_pet(db, pet)
    logger.info(f"🗑️ Pet {pet_id} deleted by user {current_user.id}")
    return {"message": "Pet deleted successfully"}


@router.get("/{pet_id}/health", response_model=PetHealthResponse)
async def get_pet_health(
    pet_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a pet's health records, newest first"""
    pet = get_owned_pet_or_404(db, pet_id, current_user)
    records = PetRepository.list_health_records(db, pet.id)
    checkups = [r.record_date for r in records if r.record_type == "checkup"]
    return {
        "pet": pet,
        "health_records": records,
        "last_checkup": checkups[0] if checkups else None,
    }


@router.post("/{pet_id}/health", response_model=HealthRecordDetailResponse)
async def add_health_record(
    pet_id: int,
    body: HealthRecordCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add an entry to a pet's health history"""
    pet = get_owned_pet_or_404(db, pet_id, current_user)
    if body.vet_id is not None and not PetRepository.get_vet(db, body.vet_id):
        raise ValidationError("Veterinarian not found")

    record = PetRepository.add_health_record(db, pet.id, **body.model_dump())
    logger.info(f"🩺 Health record {record.id} added for pet {pet.id}")
    return {"health_record": record}
