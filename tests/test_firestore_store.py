"""
Tests for the Firestore event store (documents kept in an in-memory client)
"""

import base64
import json
from datetime import timedelta
from unittest.mock import patch

from google.api_core import exceptions as google_exceptions

from app.core.config import settings
from app.schemas.event import EventCreate, EventUpdate
from app.services import firebase_client
from app.services.event_query import EventFilters
from app.services.event_service import EventService
from app.services.registration_engine import ErrorKind
from app.services.registration_service import RegistrationService
from app.services.repositories import EVENTS_COLLECTION, UserRepo
from app.utils.timeutils import utcnow


def create_event(organizer, **overrides):
    fields = {
        "category": "Workshop",
        "name": "Intro to Python",
        "description": "Hands-on introduction to Python basics",
        "language": "English",
        "location": "Room 101",
        "duration": 2,
        "lecturers": 1,
        "quota": 2,
        "date_time": utcnow() + timedelta(days=7),
        "items": ["setup"],
        "level": "entry level",
    }
    fields.update(overrides)
    result = EventService.create_event(None, EventCreate(**fields), organizer)
    assert result.ok
    return result.value


def stored(store, event_id):
    return store.collections[EVENTS_COLLECTION][event_id]


def test_create_event_writes_document(firestore_store, organizer):
    event = create_event(organizer)

    document = stored(firestore_store, event["id"])
    assert "id" not in document
    assert document["attendees"] == []
    assert document["status"] == "open"
    assert document["created_by"] == organizer.id
    assert isinstance(document["date_time"], str)


def test_single_seat_scenario(firestore_store, organizer, alice, bob):
    event_id = create_event(organizer, quota=1)["id"]

    first = RegistrationService.register(None, event_id, alice, name="Alice B.")
    assert first.value.status == "full"
    document = stored(firestore_store, event_id)
    assert document["status"] == "full"
    assert document["attendees"][0]["name"] == "Alice B."
    assert "attended_at" not in document["attendees"][0]

    bounced = RegistrationService.register(None, event_id, bob)
    assert bounced.error.kind == ErrorKind.EVENT_FULL

    assert RegistrationService.unregister(None, event_id, alice.id).ok
    assert stored(firestore_store, event_id)["status"] == "open"

    second = RegistrationService.register(None, event_id, bob)
    assert second.ok
    assert [a["user_id"] for a in stored(firestore_store, event_id)["attendees"]] == [bob.id]


def test_rejected_registration_leaves_document_untouched(firestore_store, organizer, alice):
    event_id = create_event(organizer, quota=3)["id"]
    RegistrationService.register(None, event_id, alice)
    before = dict(stored(firestore_store, event_id))

    result = RegistrationService.register(None, event_id, alice)

    assert result.error.kind == ErrorKind.ALREADY_REGISTERED
    assert stored(firestore_store, event_id) == before


def test_missing_document(firestore_store, alice):
    assert RegistrationService.register(None, "missing", alice).error.kind == ErrorKind.NOT_FOUND
    assert EventService.update_event(None, "missing", EventUpdate(quota=3)).error.kind == ErrorKind.NOT_FOUND
    assert RegistrationService.list_attendees(None, "missing").error.kind == ErrorKind.NOT_FOUND
    assert EventService.delete_event(None, "missing").error.kind == ErrorKind.NOT_FOUND


def test_attendance_and_attendee_listing(firestore_store, organizer, alice, bob):
    event_id = create_event(organizer, quota=3)["id"]
    RegistrationService.register(None, event_id, alice)
    RegistrationService.register(None, event_id, bob)

    marked = RegistrationService.mark_attendance(None, event_id, bob.id, True)
    unknown = RegistrationService.mark_attendance(None, event_id, "user-nobody", True)
    listing = RegistrationService.list_attendees(None, event_id, attended=True).value

    assert marked.value.attended is True
    assert "attended_at" in stored(firestore_store, event_id)["attendees"][1]
    assert unknown.error.kind == ErrorKind.ATTENDEE_NOT_FOUND
    assert [a["user_id"] for a in listing["attendees"]] == [bob.id]
    assert listing["event"]["total_registered"] == 2
    assert listing["event"]["total_attended"] == 1
    assert listing["event"]["available_slots"] == 1


def test_listing_filters_sorts_and_paginates(firestore_store, organizer):
    start = utcnow() + timedelta(days=3)
    create_event(organizer, name="Rust Meetup", description="Ownership explained", category="Meetup",
                 date_time=start + timedelta(days=5))
    create_event(organizer, name="Python Basics", date_time=start)
    create_event(organizer, name="Data Talk", description="Python for analysts", category="Talk",
                 date_time=start + timedelta(days=1))

    everything = EventService.list_events(None, EventFilters(), page=1, limit=2).value
    searched = EventService.list_events(None, EventFilters(search="PYTHON"), page=1, limit=10).value
    talks = EventService.list_events(None, EventFilters(category="Talk"), page=1, limit=10).value

    assert [e["name"] for e in everything["events"]] == ["Python Basics", "Data Talk"]
    assert everything["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
    assert "attendees" not in everything["events"][0]
    assert [e["name"] for e in searched["events"]] == ["Python Basics", "Data Talk"]
    assert [e["name"] for e in talks["events"]] == ["Data Talk"]


def test_options_and_user_events(firestore_store, organizer, alice):
    joined = create_event(organizer, name="Joined", category="Talk", level="advanced")
    create_event(organizer, name="Other", status="cancelled")
    RegistrationService.register(None, joined["id"], alice)

    options = EventService.get_options(None).value
    mine = EventService.list_user_events(None, alice.id).value

    assert options["categories"] == ["Talk", "Workshop"]
    assert options["statuses"] == ["cancelled", "open"]
    assert options["levels"] == ["advanced", "entry level"]
    assert [e["name"] for e in mine] == ["Joined"]
    assert mine[0]["user_registration"]["user_id"] == alice.id
    assert EventService.list_user_events(None, alice.id, status="full").value == []


def test_update_keeps_status_consistent(firestore_store, organizer, alice, bob):
    event_id = create_event(organizer, quota=3)["id"]
    RegistrationService.register(None, event_id, alice)
    RegistrationService.register(None, event_id, bob)

    too_small = EventService.update_event(None, event_id, EventUpdate(quota=1))
    shrunk = EventService.update_event(None, event_id, EventUpdate(quota=2, location="Hall"))
    cancelled = EventService.update_event(None, event_id, EventUpdate(status="cancelled", quota=6))

    assert too_small.error.kind == ErrorKind.VALIDATION_FAILED
    assert shrunk.value["status"] == "full"
    assert shrunk.value["id"] == event_id
    assert cancelled.value["status"] == "cancelled"
    document = stored(firestore_store, event_id)
    assert document["location"] == "Hall"
    assert document["quota"] == 6
    assert "id" not in document


def test_poster_and_delete(firestore_store, organizer):
    event_id = create_event(organizer)["id"]
    url = "https://res.cloudinary.com/demo/image/upload/v1/event-posters/poster.png"

    with patch("app.services.event_service.AssetStore.store", return_value=url), \
         patch("app.services.event_service.AssetStore.delete", return_value=True) as delete:
        EventService.set_poster(None, event_id, b"\x89PNG", "poster.png")
        result = EventService.delete_event(None, event_id)

    assert result.value == {"deleted_event_id": event_id, "poster_released": True}
    delete.assert_called_once_with(url)
    assert event_id not in firestore_store.collections[EVENTS_COLLECTION]


def test_store_errors_are_reported_as_unavailable(firestore_store, organizer, alice):
    event_id = create_event(organizer)["id"]
    outage = google_exceptions.ServiceUnavailable("Firestore is down")

    with patch.object(firestore_store, "transaction", side_effect=outage):
        result = RegistrationService.register(None, event_id, alice)
    with patch.object(firestore_store, "collection", side_effect=outage):
        listing = EventService.list_events(None, EventFilters(), page=1, limit=10)

    assert result.error.kind == ErrorKind.STORE_UNAVAILABLE
    assert listing.error.kind == ErrorKind.STORE_UNAVAILABLE
    assert stored(firestore_store, event_id)["attendees"] == []


def test_user_lookup(firestore_store, alice):
    user = UserRepo.get_by_id_fs(alice.id)

    assert user["id"] == alice.id
    assert user["email"] == alice.email
    assert UserRepo.get_by_id_fs("user-nobody") is None


def test_api_registration_against_firestore(client, firestore_store, auth_headers, organizer, alice):
    event_id = create_event(organizer, quota=1)["id"]

    response = client.post(f"/api/events/{event_id}/register", headers=auth_headers(alice))
    details = client.get(f"/api/events/{event_id}").json()["data"]

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "full"
    assert details["registered_count"] == 1
    assert details["available_slots"] == 0


def test_service_account_sources(tmp_path):
    account = {"type": "service_account", "project_id": "events-test"}
    encoded = base64.b64encode(json.dumps(account).encode("utf-8")).decode("ascii")
    key_file = tmp_path / "service-account.json"
    key_file.write_text(json.dumps(account), encoding="utf-8")

    with patch.object(settings, "FIREBASE_CREDENTIALS_JSON", None), \
         patch.object(settings, "FIREBASE_CREDENTIALS_B64", encoded), \
         patch.object(settings, "FIREBASE_CREDENTIALS_FILE", str(tmp_path / "absent.json")):
        assert firebase_client.service_account_info() == account

    with patch.object(settings, "FIREBASE_CREDENTIALS_JSON", None), \
         patch.object(settings, "FIREBASE_CREDENTIALS_B64", None), \
         patch.object(settings, "FIREBASE_CREDENTIALS_FILE", str(key_file)):
        assert firebase_client.service_account_info() == account

    with patch.object(settings, "FIREBASE_CREDENTIALS_JSON", None), \
         patch.object(settings, "FIREBASE_CREDENTIALS_B64", None), \
         patch.object(settings, "FIREBASE_CREDENTIALS_FILE", str(tmp_path / "absent.json")):
        assert firebase_client.service_account_info() is None


def test_no_client_while_sql_store_is_used():
    firebase_client.get_firestore_client.cache_clear()
    try:
        with patch.object(settings, "USE_FIREBASE", False):
            assert firebase_client.get_firestore_client() is None
    finally:
        firebase_client.get_firestore_client.cache_clear()
