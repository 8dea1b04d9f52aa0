from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import User
from ..schemas import VeterinariansResponse

router = APIRouter(prefix="/veterinarians", tags=["Veterinarians"])


@router.get("", response_model=VeterinariansResponse)
async def list_veterinarians(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Get all veterinarians ordered by name"""
    vets = db.query(User).filter(User.role == "vet").order_by(User.full_name).all()
    return {"veterinarians": vets}
