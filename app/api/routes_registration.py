"""
Attendee-facing API routes - requires an authenticated user
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models import EventStatus
from app.schemas.attendee import RegisterRequest
from app.services.event_service import EventService
from app.services.registration_service import RegistrationService
from app.utils.responses import success_response, engine_error_response
from app.utils.security import CurrentUser, get_current_user

router = APIRouter()

@router.get("/events/user/my-events")
async def get_my_events(
    status: Optional[EventStatus] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Events the caller is registered for"""
    result = EventService.list_user_events(db, current_user.id, status.value if status else None)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(message="Registered events retrieved", data=result.value)

@router.post("/events/{event_id}/register")
async def register_for_event(
    event_id: str,
    registration: Optional[RegisterRequest] = None,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Register the caller, optionally with contact details overriding the profile"""
    registration = registration or RegisterRequest()
    result = RegistrationService.register(
        db,
        event_id,
        current_user,
        email=registration.email,
        name=registration.name,
    )
    if not result.ok:
        return engine_error_response(result.error)
    
    outcome = result.value
    return success_response(
        message="Successfully registered for the event",
        data={
            "event_id": event_id,
            "attendee_id": outcome.attendee.id,
            "registered_at": outcome.attendee.registered_at,
            "available_slots": outcome.available_slots,
            "status": outcome.status,
        }
    )

@router.delete("/events/{event_id}/unregister")
async def unregister_from_event(
    event_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Remove the caller's registration"""
    result = RegistrationService.unregister(db, event_id, current_user.id)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(
        message="Successfully unregistered from the event",
        data={"event_id": event_id, "user_id": current_user.id}
    )
