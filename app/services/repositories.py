"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Every write to an event goes through ``EventRepo.mutate_sql`` or
``EventRepo.mutate_fs`` so that the read-check-write sequence on one event is
never interleaved with another writer.
"""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions
from sqlalchemy import Text, cast
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.models import Event, User
from app.services.event_query import (
    EventFilters, apply_filters, like_pattern, matches, order_events, paginate, sort_key,
)
from app.services.firebase_client import get_firestore_client
from app.services.registration_engine import ErrorKind, OperationResult
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "events"
USERS_COLLECTION = "users"

DISTINCT_FIELDS = ("category", "status", "level")


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def event_to_document(event: Event) -> Dict[str, Any]:
    """Render an Event row in the same shape as a Firestore event document"""
    return {
        "id": event.id,
        "category": event.category,
        "name": event.name,
        "description": event.description,
        "language": event.language,
        "location": event.location,
        "duration": event.duration,
        "lecturers": event.lecturers,
        "quota": event.quota,
        "date_time": _isoformat(event.date_time),
        "items": list(event.items or []),
        "level": event.level,
        "assessment": bool(event.assessment),
        "status": event.status,
        "attendees": list(event.attendees or []),
        "poster_url": event.poster_url,
        "created_by": event.created_by,
        "created_at": _isoformat(event.created_at),
        "updated_at": _isoformat(event.updated_at),
    }


class EventLocks:
    """Per-event mutexes serializing writers inside this process.

    An entry lives only while some thread holds or waits for it, so the map
    never grows past the number of in-flight writes.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # event_id -> [lock, number of holders and waiters]
        self._locks: Dict[str, List[Any]] = {}

    @contextmanager
    def hold(self, event_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(event_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[event_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


event_locks = EventLocks()


# -------- Event repository --------

class EventRepo:
    @staticmethod
    def get_by_id_sql(db: Session, event_id: str) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def get_for_update_sql(db: Session, event_id: str) -> Optional[Event]:
        return (
            db.query(Event)
            .filter(Event.id == event_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def create_sql(db: Session, **fields) -> Event:
        event = Event(**fields)
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def delete_sql(db: Session, event: Event) -> None:
        db.delete(event)
        db.commit()

    @staticmethod
    def find_sql(db: Session, filters: EventFilters, page: int, limit: int) -> List[Event]:
        query = order_events(apply_filters(db.query(Event), filters))
        return query.offset((page - 1) * limit).limit(limit).all()

    @staticmethod
    def count_sql(db: Session, filters: EventFilters) -> int:
        return apply_filters(db.query(Event), filters).count()

    @staticmethod
    def distinct_sql(db: Session, field: str) -> List[str]:
        if field not in DISTINCT_FIELDS:
            raise ValueError(f"Unsupported distinct field: {field}")
        column = getattr(Event, field)
        rows = db.query(column).distinct().order_by(column).all()
        return [value for (value,) in rows if value]

    @staticmethod
    def find_by_attendee_sql(db: Session, user_id: str, status: Optional[str] = None) -> List[Event]:
        query = apply_filters(db.query(Event), EventFilters(status=status))
        if user_id.isascii():
            # Substring match on the serialized attendees narrows the rows; the
            # exact user_id comparison happens on the decoded list below
            serialized = json.dumps(user_id)[1:-1]
            query = query.filter(cast(Event.attendees, Text).like(like_pattern(serialized), escape="\\"))
        return [
            event for event in order_events(query).all()
            if any(a.get("user_id") == user_id for a in event.attendees or [])
        ]

    @staticmethod
    def mutate_sql(
        db: Session,
        event_id: str,
        mutate: Callable[[Event], OperationResult],
    ) -> OperationResult:
        """Lock the event, apply ``mutate`` to the row and commit only on success"""
        with event_locks.hold(event_id):
            try:
                event = EventRepo.get_for_update_sql(db, event_id)
                if event is None:
                    db.rollback()
                    return OperationResult.failure(ErrorKind.NOT_FOUND, "Event not found")
                result = mutate(event)
                if result.ok:
                    db.commit()
                else:
                    db.rollback()
                return result
            except StaleDataError:
                db.rollback()
                logger.warning(f"Concurrent modification of event {event_id} detected; write rejected")
                return OperationResult.failure(
                    ErrorKind.STORE_UNAVAILABLE, "Event was modified concurrently, please retry"
                )
            except SQLAlchemyError:
                db.rollback()
                logger.exception(f"Database error while updating event {event_id}")
                return OperationResult.failure(ErrorKind.STORE_UNAVAILABLE, "Event store unavailable")

    # Firestore shape: collection "events/{id}" document with fields

    @staticmethod
    def get_by_id_fs(event_id: str) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        if not fs:
            return None
        doc = fs.collection(EVENTS_COLLECTION).document(event_id).get()
        if not doc.exists:
            return None
        data = doc.to_dict()
        data["id"] = doc.id
        return data

    @staticmethod
    def create_fs(event_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        fs = get_firestore_client()
        now = utcnow().isoformat()
        data = {**data, "created_at": now, "updated_at": now}
        fs.collection(EVENTS_COLLECTION).document(event_id).set(data)
        data["id"] = event_id
        return data

    @staticmethod
    def delete_fs(event_id: str) -> None:
        fs = get_firestore_client()
        fs.collection(EVENTS_COLLECTION).document(event_id).delete()

    @staticmethod
    def all_fs() -> List[Dict[str, Any]]:
        fs = get_firestore_client()
        results: List[Dict[str, Any]] = []
        for d in fs.collection(EVENTS_COLLECTION).stream():
            item = d.to_dict()
            item["id"] = d.id
            results.append(item)
        return results

    @staticmethod
    def find_fs(filters: EventFilters, page: int, limit: int) -> tuple[List[Dict[str, Any]], int]:
        # Substring search has no Firestore query equivalent, so filtering happens here
        selected = sorted((d for d in EventRepo.all_fs() if matches(d, filters)), key=sort_key)
        return paginate(selected, page, limit), len(selected)

    @staticmethod
    def distinct_fs(field: str) -> List[str]:
        if field not in DISTINCT_FIELDS:
            raise ValueError(f"Unsupported distinct field: {field}")
        return sorted({d.get(field) for d in EventRepo.all_fs() if d.get(field)})

    @staticmethod
    def find_by_attendee_fs(user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = EventFilters(status=status)
        selected = [
            d for d in EventRepo.all_fs()
            if matches(d, filters) and any(a.get("user_id") == user_id for a in d.get("attendees") or [])
        ]
        return sorted(selected, key=sort_key)

    @staticmethod
    def mutate_fs(
        event_id: str,
        mutate: Callable[[Dict[str, Any]], OperationResult],
    ) -> OperationResult:
        """Apply ``mutate`` to the event document inside a Firestore transaction"""
        fs = get_firestore_client()
        ref = fs.collection(EVENTS_COLLECTION).document(event_id)

        @firestore.transactional
        def apply(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                return OperationResult.failure(ErrorKind.NOT_FOUND, "Event not found")
            data = snapshot.to_dict()
            result = mutate(data)
            if result.ok:
                data["updated_at"] = utcnow().isoformat()
                data.pop("id", None)
                transaction.set(ref, data)
            return result

        try:
            return apply(fs.transaction())
        except google_exceptions.GoogleAPIError:
            logger.exception(f"Firestore error while updating event {event_id}")
            return OperationResult.failure(ErrorKind.STORE_UNAVAILABLE, "Event store unavailable")


# -------- User repository --------

class UserRepo:
    @staticmethod
    def get_by_id_sql(db: Session, user_id: str) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    # Firestore user docs under collection users/{id}
    @staticmethod
    def get_by_id_fs(user_id: str) -> Optional[Dict[str, Any]]:
        fs = get_firestore_client()
        if not fs:
            return None
        doc = fs.collection(USERS_COLLECTION).document(user_id).get()
        if not doc.exists:
            return None
        data = doc.to_dict()
        data["id"] = doc.id
        return data
