"""
Shared fixtures: a throwaway SQLite database, an in-memory Firestore and sample users/events
"""

import copy
import os
from collections import defaultdict
from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.config import settings
from app.core.db import Base, get_db
from app.models import Event, User
from app.models.event import generate_event_id
from app.services import repositories
from app.utils.security import CurrentUser, create_access_token, rate_limiter
from app.utils.timeutils import utcnow
from main import app

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_events.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory():
    """Create the schema and hand out the session factory"""
    Base.metadata.create_all(bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        if os.path.exists("./test_events.db"):
            os.remove("./test_events.db")


@pytest.fixture
def db_session(session_factory):
    """Create test database session"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def admin():
    return CurrentUser(id="admin-1", email="admin@example.com", name="Site Admin", role="admin")


@pytest.fixture
def organizer():
    return CurrentUser(id="organizer-1", email="organizer@example.com", name="Olivia Organizer", role="user")


@pytest.fixture
def alice():
    return CurrentUser(id="user-alice", email="alice@example.com", name="Alice Brown", role="user")


@pytest.fixture
def bob():
    return CurrentUser(id="user-bob", email="bob@example.com", name="Bob Johnson", role="user")


@pytest.fixture
def users(db_session, admin, organizer, alice, bob):
    """Persist the sample users in the directory"""
    for user in (admin, organizer, alice, bob):
        db_session.add(User(id=user.id, email=user.email, name=user.name, role=user.role))
    db_session.commit()
    return {"admin": admin, "organizer": organizer, "alice": alice, "bob": bob}


@pytest.fixture
def make_event(db_session, organizer):
    """Factory persisting an event owned by the organizer"""
    def _make_event(**overrides):
        fields = {
            "id": generate_event_id(),
            "category": "Workshop",
            "name": "Intro to Python",
            "description": "Hands-on introduction to Python basics",
            "language": "English",
            "location": "Room 101",
            "duration": 2.0,
            "lecturers": 1,
            "quota": 2,
            "date_time": utcnow() + timedelta(days=7),
            "items": ["setup", "syntax", "setup"],
            "level": "entry level",
            "assessment": False,
            "status": "open",
            "attendees": [],
            "created_by": organizer.id,
        }
        fields.update(overrides)
        event = Event(**fields)
        db_session.add(event)
        db_session.commit()
        db_session.refresh(event)
        return event
    return _make_event


@pytest.fixture
def client(db_session, users):
    """API client bound to the test session"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.clear()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers for one of the sample users"""
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return _auth_headers


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    @property
    def exists(self):
        return self._data is not None

    def to_dict(self):
        return copy.deepcopy(self._data)


class FakeDocumentRef:
    def __init__(self, docs, doc_id):
        self._docs = docs
        self.id = doc_id

    def get(self, transaction=None):
        return FakeSnapshot(self.id, self._docs.get(self.id))

    def set(self, data):
        self._docs[self.id] = copy.deepcopy(data)

    def delete(self):
        self._docs.pop(self.id, None)


class FakeCollection:
    def __init__(self, docs):
        self._docs = docs

    def document(self, doc_id):
        return FakeDocumentRef(self._docs, doc_id)

    def stream(self):
        return [FakeSnapshot(doc_id, data) for doc_id, data in list(self._docs.items())]


class FakeTransaction:
    def set(self, ref, data):
        ref.set(data)


class InMemoryFirestore:
    """Enough of the Firestore client surface for the repositories"""

    def __init__(self):
        self.collections = defaultdict(dict)

    def collection(self, name):
        return FakeCollection(self.collections[name])

    def transaction(self):
        return FakeTransaction()


@pytest.fixture
def firestore_store(alice, bob, organizer, admin):
    """Run the repositories against an in-memory Firestore holding the sample users"""
    store = InMemoryFirestore()
    for user in (admin, organizer, alice, bob):
        store.collections[repositories.USERS_COLLECTION][user.id] = {
            "email": user.email, "name": user.name, "role": user.role,
        }

    with patch.object(settings, "USE_FIREBASE", True), \
         patch("app.services.repositories.get_firestore_client", return_value=store), \
         patch.object(repositories.firestore, "transactional", side_effect=lambda fn: fn):
        yield store
