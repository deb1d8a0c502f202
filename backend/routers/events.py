from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from admission import register_for_event
from auth import get_optional_user
from database import get_db
from events_service import get_event, list_public_events
from models import User
from schemas import (
    EventCategoryEnum,
    EventListResponse,
    EventResponse,
    RegistrationCreatedResponse,
    RegistrationRequest,
    TeamMemberResponse,
)

router = APIRouter()


@router.get("/events", response_model=EventListResponse)
def get_events(
    page: int = Query(1),
    limit: int = Query(10),
    category: Optional[EventCategoryEnum] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db)
):
    return list_public_events(db, page=page, limit=limit, category=category, search=search)


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event_detail(event_id: int, db: Session = Depends(get_db)):
    return get_event(db, event_id)


@router.post("/events/{event_id}/register", response_model=RegistrationCreatedResponse, status_code=status.HTTP_201_CREATED)
def register(
    event_id: int,
    payload: Optional[RegistrationRequest] = None,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    payload = payload or RegistrationRequest()
    registration = register_for_event(
        db,
        user,
        event_id,
        notes=payload.notes,
        team_members=payload.team_members,
    )
    return RegistrationCreatedResponse(
        id=registration.id,
        registration_id=registration.registration_id,
        event_id=registration.event_id,
        payment_status=registration.payment_status.value,
        team_members=[TeamMemberResponse.model_validate(member) for member in registration.team_members],
    )
