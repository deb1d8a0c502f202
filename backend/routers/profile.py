from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from admission import list_user_registrations
from database import get_db
from models import User
from profiles import profile_summary, update_profile
from schemas import ProfileResponse, ProfileUpdate, RegistrationSummary
from security import require_user

router = APIRouter()


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return profile_summary(db, user)


@router.put("/profile", response_model=ProfileResponse)
def put_profile(
    profile_data: ProfileUpdate,
    user: User = Depends(require_user),
    db: Session = Depends(get_db)
):
    user = update_profile(db, user, profile_data)
    return profile_summary(db, user)


@router.get("/me/registrations", response_model=List[RegistrationSummary])
def get_my_registrations(user: User = Depends(require_user), db: Session = Depends(get_db)):
    return list_user_registrations(db, user)
