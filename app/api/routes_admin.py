"""
Event management API routes - creator or admin only
"""

import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.schemas.attendee import AttendanceUpdate
from app.schemas.event import EventCreate, EventUpdate
from app.services.event_service import EventService
from app.services.registration_engine import EngineError, ErrorKind
from app.services.registration_service import RegistrationService
from app.utils.responses import success_response, error_response, engine_error_response
from app.utils.security import CurrentUser, can_manage_event, get_current_user

router = APIRouter()

def _check_manage_permission(db: Session, event_id: str, user: CurrentUser, action: str):
    """Return an error response unless ``user`` may manage the event"""
    loaded = EventService.load_event(db, event_id)
    if not loaded.ok:
        return engine_error_response(loaded.error)
    if not can_manage_event(loaded.value, user):
        return engine_error_response(EngineError(ErrorKind.FORBIDDEN, f"Not authorized to {action}"))
    return None

@router.post("/events")
async def create_event(
    event_data: EventCreate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create a new event owned by the caller"""
    result = EventService.create_event(db, event_data, current_user)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(
        message="Event created successfully",
        data=result.value,
        status_code=201
    )

@router.put("/events/{event_id}")
async def update_event(
    event_id: str,
    event_update: EventUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Update event fields; an explicit closed/completed/cancelled status is kept as set"""
    denied = _check_manage_permission(db, event_id, current_user, "update this event")
    if denied:
        return denied

    result = EventService.update_event(db, event_id, event_update)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(message="Event updated successfully", data=result.value)

@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Delete an event together with its attendees and poster"""
    denied = _check_manage_permission(db, event_id, current_user, "delete this event")
    if denied:
        return denied

    result = EventService.delete_event(db, event_id)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(message="Event deleted successfully", data=result.value)

@router.post("/events/{event_id}/poster")
async def upload_poster(
    event_id: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Upload or replace the event poster image"""
    denied = _check_manage_permission(db, event_id, current_user, "change this event's poster")
    if denied:
        return denied

    extension = os.path.splitext(file.filename or "")[1].lstrip(".").lower()
    if extension not in settings.ALLOWED_POSTER_TYPES:
        return error_response(
            message=f"Invalid file format. Allowed formats: {', '.join(settings.ALLOWED_POSTER_TYPES)}",
            error_code=ErrorKind.VALIDATION_FAILED.value,
            status_code=400
        )

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        return error_response(
            message="Poster exceeds the maximum upload size",
            error_code=ErrorKind.VALIDATION_FAILED.value,
            status_code=413
        )

    result = EventService.set_poster(db, event_id, content, file.filename)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(message="Poster uploaded successfully", data=result.value)

@router.get("/events/{event_id}/attendees")
async def get_event_attendees(
    event_id: str,
    attended: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """List attendees, optionally only those who did or did not attend"""
    denied = _check_manage_permission(db, event_id, current_user, "view attendees")
    if denied:
        return denied

    result = RegistrationService.list_attendees(db, event_id, attended)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(message="Attendees retrieved successfully", data=result.value)

@router.patch("/events/{event_id}/attendees/{user_id}/attendance")
async def mark_attendance(
    event_id: str,
    user_id: str,
    attendance: AttendanceUpdate,
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Mark or unmark a registered user as attended"""
    denied = _check_manage_permission(db, event_id, current_user, "mark attendance")
    if denied:
        return denied

    result = RegistrationService.mark_attendance(db, event_id, user_id, attendance.attended)
    if not result.ok:
        return engine_error_response(result.error)

    return success_response(
        message=f"Attendance {'marked' if attendance.attended else 'unmarked'} successfully",
        data=result.value.to_dict()
    )
