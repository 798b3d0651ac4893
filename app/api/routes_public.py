"""
Public API routes - no authentication required
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.models import EventLevel, EventStatus
from app.services.event_query import EventFilters
from app.services.event_service import EventService
from app.utils.responses import success_response, engine_error_response, rate_limit_error
from app.utils.security import rate_limit_check, get_client_ip

router = APIRouter()

@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

@router.get("/events")
async def list_events(
    request: Request,
    category: Optional[str] = Query(None),
    level: Optional[EventLevel] = Query(None),
    status: Optional[EventStatus] = Query(None),
    search: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db)
):
    """List events filtered by category, level, status, text and date range"""
    if not rate_limit_check(get_client_ip(request)):
        return rate_limit_error()
    
    filters = EventFilters(
        category=category,
        level=level.value if level else None,
        status=status.value if status else None,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    result = EventService.list_events(db, filters, page, limit)
    if not result.ok:
        return engine_error_response(result.error)
    
    return success_response(
        message="Events retrieved successfully",
        data=result.value
    )

@router.get("/events/options")
async def get_event_options(db: Session = Depends(get_db)):
    """Distinct categories, statuses and levels for filter dropdowns"""
    result = EventService.get_options(db)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(message="Event options retrieved", data=result.value)

@router.get("/events/categories")
async def get_categories(db: Session = Depends(get_db)):
    result = EventService.get_options(db)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(message="Categories retrieved", data=result.value["categories"])

@router.get("/events/statuses")
async def get_statuses(db: Session = Depends(get_db)):
    result = EventService.get_options(db)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(message="Statuses retrieved", data=result.value["statuses"])

@router.get("/events/{event_id}")
async def get_event(event_id: str, db: Session = Depends(get_db)):
    """Get a single event with its occupancy counters"""
    result = EventService.get_event_details(db, event_id)
    if not result.ok:
        return engine_error_response(result.error)
    return success_response(message="Event retrieved", data=result.value)
