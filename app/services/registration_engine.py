"""
Event registration engine

Capacity, duplicate-registration, attendance and status rules for the
attendee list embedded in an event. The engine performs no I/O: callers load
an EventState, run one operation, and persist ``persisted_fields()`` as a
single write. Every outcome is returned as an OperationResult.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Iterable, Iterator, List, Mapping, Optional, TypeVar

from app.models.event import EventStatus, TERMINAL_STATUSES
from app.utils.timeutils import parse_timestamp, utcnow

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION_FAILED = "validation_failed"
    REGISTRATION_CLOSED = "registration_closed"
    EVENT_FULL = "event_full"
    ALREADY_REGISTERED = "already_registered"
    NOT_REGISTERED = "not_registered"
    ATTENDEE_NOT_FOUND = "attendee_not_found"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass(frozen=True)
class EngineError:
    kind: ErrorKind
    message: str


@dataclass
class OperationResult(Generic[T]):
    """Either a value or an EngineError, never both"""
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "OperationResult[T]":
        return cls(error=EngineError(kind=kind, message=message))


@dataclass
class Attendee:
    user_id: str
    email: str
    name: str
    registered_at: datetime
    attended: bool = False
    attended_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "name": self.name,
            "registered_at": self.registered_at.isoformat(),
            "attended": self.attended,
        }
        if self.attended and self.attended_at is not None:
            data["attended_at"] = self.attended_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Attendee":
        attended = bool(data.get("attended", False))
        return cls(
            id=data.get("id") or uuid.uuid4().hex,
            user_id=str(data["user_id"]),
            email=data["email"],
            name=data["name"],
            registered_at=parse_timestamp(data.get("registered_at")) or utcnow(),
            attended=attended,
            attended_at=parse_timestamp(data.get("attended_at")) if attended else None,
        )


class AttendeeRoster:
    """Ordered attendee list with a user_id -> position index kept in step"""

    def __init__(self, attendees: Iterable[Attendee] = ()):
        self._attendees: List[Attendee] = []
        self._positions: Dict[str, int] = {}
        for attendee in attendees:
            self.append(attendee)

    @classmethod
    def from_documents(cls, documents: Optional[Iterable[Mapping[str, Any]]]) -> "AttendeeRoster":
        return cls(Attendee.from_dict(doc) for doc in documents or [])

    def __len__(self) -> int:
        return len(self._attendees)

    def __contains__(self, user_id: object) -> bool:
        return str(user_id) in self._positions

    def __iter__(self) -> Iterator[Attendee]:
        return iter(self._attendees)

    def get(self, user_id: str) -> Optional[Attendee]:
        position = self._positions.get(str(user_id))
        return None if position is None else self._attendees[position]

    def append(self, attendee: Attendee) -> None:
        if attendee.user_id in self._positions:
            raise ValueError(f"User {attendee.user_id} is already on the roster")
        self._positions[attendee.user_id] = len(self._attendees)
        self._attendees.append(attendee)

    def remove(self, user_id: str) -> Attendee:
        position = self._positions.pop(str(user_id))
        removed = self._attendees.pop(position)
        for index in range(position, len(self._attendees)):
            self._positions[self._attendees[index].user_id] = index
        return removed

    def snapshot(self, attended: Optional[bool] = None) -> List[Attendee]:
        return [
            replace(attendee)
            for attendee in self._attendees
            if attended is None or attendee.attended == attended
        ]

    def to_documents(self) -> List[Dict[str, Any]]:
        return [attendee.to_dict() for attendee in self._attendees]


@dataclass
class EventState:
    """The mutable registration state of one event"""
    quota: int
    status: str
    roster: AttendeeRoster

    @classmethod
    def from_event(cls, event) -> "EventState":
        return cls(
            quota=event.quota,
            status=event.status,
            roster=AttendeeRoster.from_documents(event.attendees),
        )

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "EventState":
        return cls(
            quota=int(document["quota"]),
            status=document.get("status") or EventStatus.OPEN.value,
            roster=AttendeeRoster.from_documents(document.get("attendees")),
        )

    @property
    def available_slots(self) -> int:
        return self.quota - len(self.roster)

    def persisted_fields(self) -> Dict[str, Any]:
        # Attendee list and status are always written together
        return {"attendees": self.roster.to_documents(), "status": self.status}

    def apply_to(self, event) -> None:
        for key, value in self.persisted_fields().items():
            setattr(event, key, value)


@dataclass(frozen=True)
class Registration:
    attendee: Attendee
    available_slots: int
    status: str


def is_terminal(status: str) -> bool:
    return EventStatus(status) in TERMINAL_STATUSES


def derive_status(status: str, attendee_count: int, quota: int) -> str:
    """Recompute the automatic open/full status; administrative states are sticky"""
    if is_terminal(status):
        return EventStatus(status).value
    if attendee_count >= quota:
        return EventStatus.FULL.value
    return EventStatus.OPEN.value


def register(
    state: EventState,
    user,
    email: Optional[str] = None,
    name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> OperationResult[Registration]:
    if is_terminal(state.status):
        return OperationResult.failure(ErrorKind.REGISTRATION_CLOSED, "Event is not open for registration")
    if len(state.roster) >= state.quota:
        return OperationResult.failure(ErrorKind.EVENT_FULL, "Event is full")
    user_id = str(user.id)
    if user_id in state.roster:
        return OperationResult.failure(ErrorKind.ALREADY_REGISTERED, "User is already registered for this event")

    attendee = Attendee(
        user_id=user_id,
        email=email if email is not None else user.email,
        name=name if name is not None else user.name,
        registered_at=now or utcnow(),
    )
    state.roster.append(attendee)
    state.status = derive_status(state.status, len(state.roster), state.quota)
    return OperationResult.success(Registration(
        attendee=replace(attendee),
        available_slots=state.available_slots,
        status=state.status,
    ))


def unregister(state: EventState, user_id: str) -> OperationResult[Attendee]:
    if user_id not in state.roster:
        return OperationResult.failure(ErrorKind.NOT_REGISTERED, "User is not registered for this event")
    removed = state.roster.remove(user_id)
    state.status = derive_status(state.status, len(state.roster), state.quota)
    return OperationResult.success(removed)


def mark_attendance(
    state: EventState,
    user_id: str,
    attended: bool,
    now: Optional[datetime] = None,
) -> OperationResult[Attendee]:
    attendee = state.roster.get(user_id)
    if attendee is None:
        return OperationResult.failure(ErrorKind.ATTENDEE_NOT_FOUND, "Attendee not found")
    attendee.attended = attended
    attendee.attended_at = (now or utcnow()) if attended else None
    return OperationResult.success(replace(attendee))


def list_attendees(state: EventState, attended: Optional[bool] = None) -> List[Attendee]:
    return state.roster.snapshot(attended)
