"""
Event model

Attendees are embedded in the event row as an ordered JSON array of
sub-documents, mirroring the document-store layout.
"""

import uuid
from enum import Enum

from sqlalchemy import Column, Integer, String, Text, Float, Boolean, DateTime, JSON, ForeignKey

from app.core.db import Base
from app.utils.timeutils import utcnow


class EventStatus(str, Enum):
    OPEN = "open"
    FULL = "full"
    CLOSED = "closed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Set only by an explicit administrative update, never by capacity derivation
TERMINAL_STATUSES = frozenset({EventStatus.CLOSED, EventStatus.COMPLETED, EventStatus.CANCELLED})


class EventLevel(str, Enum):
    ENTRY = "entry level"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    ALL = "all"


def generate_event_id() -> str:
    return uuid.uuid4().hex


class Event(Base):
    __tablename__ = "events"
    
    id = Column(String(32), primary_key=True, default=generate_event_id)
    category = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    language = Column(String(50), nullable=False)
    location = Column(String(255), nullable=False)
    duration = Column(Float, nullable=False)  # hours
    lecturers = Column(Integer, nullable=False)
    quota = Column(Integer, nullable=False)
    date_time = Column(DateTime, nullable=False, index=True)
    items = Column(JSON, nullable=False, default=list)
    level = Column(String(50), nullable=False, index=True)
    assessment = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=EventStatus.OPEN.value, index=True)
    attendees = Column(JSON, nullable=False, default=list)
    poster_url = Column(String(500), nullable=True)
    created_by = Column(String(64), ForeignKey("users.id"), nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    
    # UPDATE ... WHERE version = :expected, raises StaleDataError on a lost race
    __mapper_args__ = {"version_id_col": version}
