"""
Event CRUD, listing and poster management

Authorization is decided by the caller; these methods trust it.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

import cloudinary.exceptions
from google.api_core import exceptions as google_exceptions
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import EventStatus
from app.models.event import generate_event_id
from app.schemas.event import EventCreate, EventUpdate
from app.services.asset_store import AssetStore
from app.services.event_query import EventFilters, pagination_meta
from app.services.registration_engine import (
    Attendee, ErrorKind, OperationResult, derive_status, is_terminal,
)
from app.services.repositories import (
    DISTINCT_FIELDS, EventRepo, event_to_document, use_firestore,
)

logger = logging.getLogger(__name__)

STORE_ERRORS = (SQLAlchemyError, google_exceptions.GoogleAPIError)


def serialize_event(record, include_attendees: bool = False) -> Dict[str, Any]:
    """Public representation of an event row or document"""
    document = dict(record) if isinstance(record, Mapping) else event_to_document(record)
    attendees = document.pop("attendees", None) or []
    document["registered_count"] = len(attendees)
    document["attendance_count"] = sum(1 for a in attendees if a.get("attended"))
    document["available_slots"] = document["quota"] - len(attendees)
    if include_attendees:
        document["attendees"] = attendees
    return document


def _store_failure(action: str) -> OperationResult:
    logger.exception(f"Event store error during {action}")
    return OperationResult.failure(ErrorKind.STORE_UNAVAILABLE, "Event store unavailable")


def apply_update(record, updates: Dict[str, Any]) -> OperationResult:
    """Apply a partial update to an event row or document, keeping status consistent"""
    is_document = isinstance(record, Mapping)
    current = record if is_document else event_to_document(record)
    registered = len(current.get("attendees") or [])

    quota = updates.get("quota", current["quota"])
    if quota < registered:
        return OperationResult.failure(
            ErrorKind.VALIDATION_FAILED,
            f"Quota cannot be lower than the number of registered attendees ({registered})",
        )

    # An explicit terminal status is an administrative override; open/full are always derived
    status = updates.get("status", current["status"])
    updates["status"] = status if is_terminal(status) else derive_status(EventStatus.OPEN.value, registered, quota)

    for key, value in updates.items():
        if is_document:
            record[key] = value
        else:
            setattr(record, key, value)
    return OperationResult.success(record)


class EventService:
    """Service for event management operations"""

    @staticmethod
    def create_event(db: Session, data: EventCreate, creator) -> OperationResult[Dict[str, Any]]:
        fields = data.model_dump(mode="json")
        fields["date_time"] = data.date_time
        initial = data.status.value if data.status else EventStatus.OPEN.value
        fields["status"] = derive_status(initial, 0, data.quota)
        fields["attendees"] = []
        fields["poster_url"] = None
        fields["created_by"] = str(creator.id)
        event_id = generate_event_id()

        try:
            if use_firestore():
                fields["date_time"] = data.date_time.isoformat()
                record = EventRepo.create_fs(event_id, fields)
            else:
                record = EventRepo.create_sql(db, id=event_id, **fields)
        except STORE_ERRORS:
            if not use_firestore():
                db.rollback()
            return _store_failure("event creation")

        logger.info(f"Event {event_id} created by user {creator.id}")
        return OperationResult.success(serialize_event(record))

    @staticmethod
    def get_event(db: Session, event_id: str) -> Optional[Any]:
        """Raw event row or document, None when absent"""
        if use_firestore():
            return EventRepo.get_by_id_fs(event_id)
        return EventRepo.get_by_id_sql(db, event_id)

    @staticmethod
    def load_event(db: Session, event_id: str) -> OperationResult[Any]:
        try:
            record = EventService.get_event(db, event_id)
        except STORE_ERRORS:
            return _store_failure("event lookup")
        if record is None:
            return OperationResult.failure(ErrorKind.NOT_FOUND, "Event not found")
        return OperationResult.success(record)

    @staticmethod
    def get_event_details(db: Session, event_id: str) -> OperationResult[Dict[str, Any]]:
        result = EventService.load_event(db, event_id)
        if not result.ok:
            return result
        return OperationResult.success(serialize_event(result.value))

    @staticmethod
    def update_event(db: Session, event_id: str, data: EventUpdate) -> OperationResult[Dict[str, Any]]:
        updates = data.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        if data.date_time is not None:
            updates["date_time"] = data.date_time if not use_firestore() else data.date_time.isoformat()

        if use_firestore():
            result = EventRepo.mutate_fs(event_id, lambda doc: apply_update(doc, dict(updates)))
        else:
            result = EventRepo.mutate_sql(db, event_id, lambda event: apply_update(event, dict(updates)))
        if not result.ok:
            return result

        logger.info(f"Event {event_id} updated: {sorted(updates)}")
        record = result.value
        if isinstance(record, Mapping):
            record = {**record, "id": event_id}
        return OperationResult.success(serialize_event(record))

    @staticmethod
    def delete_event(db: Session, event_id: str) -> OperationResult[Dict[str, Any]]:
        """Delete the event with its embedded attendees and release its poster"""
        try:
            record = EventService.get_event(db, event_id)
            if record is None:
                return OperationResult.failure(ErrorKind.NOT_FOUND, "Event not found")
            poster_url = record.get("poster_url") if isinstance(record, Mapping) else record.poster_url
            if use_firestore():
                EventRepo.delete_fs(event_id)
            else:
                EventRepo.delete_sql(db, record)
        except STORE_ERRORS:
            if not use_firestore():
                db.rollback()
            return _store_failure("event deletion")

        poster_released = EventService._release_poster(poster_url) if poster_url else None
        logger.info(f"Event {event_id} deleted")
        return OperationResult.success({"deleted_event_id": event_id, "poster_released": poster_released})

    @staticmethod
    def _release_poster(url: str) -> bool:
        try:
            return AssetStore.delete(url)
        except cloudinary.exceptions.Error:
            logger.exception(f"Failed to release poster {url}")
            return False

    @staticmethod
    def set_poster(db: Session, event_id: str, content: bytes, filename: str) -> OperationResult[Dict[str, Any]]:
        """Upload a new poster, point the event at it and release the previous one"""
        existing = EventService.load_event(db, event_id)
        if not existing.ok:
            return existing

        try:
            url = AssetStore.store(content, filename)
        except cloudinary.exceptions.Error:
            logger.exception(f"Poster upload for event {event_id} failed")
            return OperationResult.failure(ErrorKind.STORE_UNAVAILABLE, "Poster upload failed")

        previous: List[Optional[str]] = []

        def replace_poster(record) -> OperationResult:
            if isinstance(record, Mapping):
                previous.append(record.get("poster_url"))
                record["poster_url"] = url
            else:
                previous.append(record.poster_url)
                record.poster_url = url
            return OperationResult.success(record)

        if use_firestore():
            result = EventRepo.mutate_fs(event_id, replace_poster)
        else:
            result = EventRepo.mutate_sql(db, event_id, replace_poster)
        if not result.ok:
            EventService._release_poster(url)
            return result

        if previous and previous[-1]:
            EventService._release_poster(previous[-1])
        return OperationResult.success({"id": event_id, "poster_url": url})

    @staticmethod
    def list_events(
        db: Session,
        filters: EventFilters,
        page: int,
        limit: int,
    ) -> OperationResult[Dict[str, Any]]:
        try:
            if use_firestore():
                records, total = EventRepo.find_fs(filters, page, limit)
            else:
                records = EventRepo.find_sql(db, filters, page, limit)
                total = EventRepo.count_sql(db, filters)
        except STORE_ERRORS:
            return _store_failure("event listing")

        return OperationResult.success({
            "events": [serialize_event(r) for r in records],
            "pagination": pagination_meta(page, limit, total),
        })

    @staticmethod
    def get_options(db: Session) -> OperationResult[Dict[str, List[str]]]:
        """Distinct categories, statuses and levels for filter dropdowns"""
        try:
            if use_firestore():
                values = {field: EventRepo.distinct_fs(field) for field in DISTINCT_FIELDS}
            else:
                values = {field: EventRepo.distinct_sql(db, field) for field in DISTINCT_FIELDS}
        except STORE_ERRORS:
            return _store_failure("option lookup")
        return OperationResult.success({
            "categories": values["category"],
            "statuses": values["status"],
            "levels": values["level"],
        })

    @staticmethod
    def list_user_events(
        db: Session,
        user_id: str,
        status: Optional[str] = None,
    ) -> OperationResult[List[Dict[str, Any]]]:
        """Events the user is registered for, each with the user's own registration"""
        try:
            if use_firestore():
                records = EventRepo.find_by_attendee_fs(user_id, status)
            else:
                records = EventRepo.find_by_attendee_sql(db, user_id, status)
        except STORE_ERRORS:
            return _store_failure("user event listing")

        events = []
        for record in records:
            event = serialize_event(record, include_attendees=True)
            own = next(a for a in event.pop("attendees") if a.get("user_id") == user_id)
            event["user_registration"] = Attendee.from_dict(own).to_dict()
            events.append(event)
        return OperationResult.success(events)
