"""
Registration service: runs registration engine operations against the event store
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from google.api_core import exceptions as google_exceptions
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.services import registration_engine as engine
from app.services.registration_engine import ErrorKind, EventState, OperationResult
from app.services.repositories import EventRepo, event_to_document, use_firestore

logger = logging.getLogger(__name__)


def _apply(operation: Callable[[EventState], OperationResult], record) -> OperationResult:
    """Run ``operation`` on the record's state and write attendees + status back on success"""
    if isinstance(record, Mapping):
        state = EventState.from_document(record)
    else:
        state = EventState.from_event(record)
    result = operation(state)
    if result.ok:
        if isinstance(record, Mapping):
            record.update(state.persisted_fields())
        else:
            state.apply_to(record)
    return result


class RegistrationService:
    """Attendee registration, unregistration and attendance tracking"""

    @staticmethod
    def _mutate(db: Session, event_id: str, operation: Callable[[EventState], OperationResult]) -> OperationResult:
        if use_firestore():
            return EventRepo.mutate_fs(event_id, lambda doc: _apply(operation, doc))
        return EventRepo.mutate_sql(db, event_id, lambda event: _apply(operation, event))

    @staticmethod
    def register(
        db: Session,
        event_id: str,
        user,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> OperationResult[engine.Registration]:
        result = RegistrationService._mutate(
            db, event_id, lambda state: engine.register(state, user, email=email, name=name)
        )
        if result.ok:
            logger.info(
                f"User {user.id} registered for event {event_id}; "
                f"{result.value.available_slots} slots left, status {result.value.status}"
            )
        return result

    @staticmethod
    def unregister(db: Session, event_id: str, user_id: str) -> OperationResult[engine.Attendee]:
        result = RegistrationService._mutate(
            db, event_id, lambda state: engine.unregister(state, user_id)
        )
        if result.ok:
            logger.info(f"User {user_id} unregistered from event {event_id}")
        return result

    @staticmethod
    def mark_attendance(
        db: Session,
        event_id: str,
        user_id: str,
        attended: bool,
    ) -> OperationResult[engine.Attendee]:
        result = RegistrationService._mutate(
            db, event_id, lambda state: engine.mark_attendance(state, user_id, attended)
        )
        if result.ok:
            logger.info(f"Attendance for user {user_id} at event {event_id} set to {attended}")
        return result

    @staticmethod
    def list_attendees(
        db: Session,
        event_id: str,
        attended: Optional[bool] = None,
    ) -> OperationResult[Dict[str, Any]]:
        """Event summary plus a snapshot of its attendees, optionally filtered by attendance"""
        try:
            if use_firestore():
                document = EventRepo.get_by_id_fs(event_id)
            else:
                event = EventRepo.get_by_id_sql(db, event_id)
                document = event_to_document(event) if event else None
        except (SQLAlchemyError, google_exceptions.GoogleAPIError):
            logger.exception(f"Store error while loading attendees of event {event_id}")
            return OperationResult.failure(ErrorKind.STORE_UNAVAILABLE, "Event store unavailable")

        if document is None:
            return OperationResult.failure(ErrorKind.NOT_FOUND, "Event not found")

        state = EventState.from_document(document)
        everyone = engine.list_attendees(state)
        selected = engine.list_attendees(state, attended)
        return OperationResult.success({
            "event": {
                "id": document["id"],
                "name": document.get("name"),
                "date_time": document.get("date_time"),
                "quota": state.quota,
                "status": state.status,
                "total_registered": len(everyone),
                "total_attended": sum(1 for a in everyone if a.attended),
                "available_slots": state.available_slots,
            },
            "attendees": [a.to_dict() for a in selected],
        })
