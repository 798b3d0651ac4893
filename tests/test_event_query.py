"""
Tests for event listing filters, ordering and pagination
"""

from datetime import datetime, timedelta

from app.services.event_query import EventFilters, matches, paginate, pagination_meta, sort_key
from app.services.event_service import EventService


BASE = datetime(2031, 3, 1, 9, 0)


def seed_events(make_event):
    return [
        make_event(name="Advanced SQL", description="Window functions", category="Workshop",
                   level="advanced", date_time=BASE + timedelta(days=3)),
        make_event(name="Python Basics", description="First steps", category="Workshop",
                   level="entry level", date_time=BASE + timedelta(days=1)),
        make_event(name="Data Talk", description="Intro to PYTHON for analysts", category="Talk",
                   level="all", date_time=BASE + timedelta(days=2), status="cancelled"),
        make_event(name="Rust Meetup", description="Ownership explained", category="Meetup",
                   level="intermediate", date_time=BASE + timedelta(days=10)),
    ]


def listed_names(result):
    return [e["name"] for e in result.value["events"]]


def test_listing_sorted_by_date_ascending(db_session, make_event):
    seed_events(make_event)

    result = EventService.list_events(db_session, EventFilters(), page=1, limit=10)

    assert listed_names(result) == ["Python Basics", "Data Talk", "Advanced SQL", "Rust Meetup"]
    assert result.value["pagination"] == {"page": 1, "limit": 10, "total": 4, "pages": 1}


def test_search_matches_name_or_description_case_insensitively(db_session, make_event):
    seed_events(make_event)

    result = EventService.list_events(db_session, EventFilters(search="python"), page=1, limit=10)

    assert listed_names(result) == ["Python Basics", "Data Talk"]


def test_filters_combine_with_and(db_session, make_event):
    seed_events(make_event)

    filters = EventFilters(category="Workshop", search="sql")
    result = EventService.list_events(db_session, filters, page=1, limit=10)

    assert listed_names(result) == ["Advanced SQL"]


def test_status_and_level_filters(db_session, make_event):
    seed_events(make_event)

    cancelled = EventService.list_events(db_session, EventFilters(status="cancelled"), page=1, limit=10)
    entry = EventService.list_events(db_session, EventFilters(level="entry level"), page=1, limit=10)

    assert listed_names(cancelled) == ["Data Talk"]
    assert listed_names(entry) == ["Python Basics"]


def test_date_range_is_inclusive(db_session, make_event):
    seed_events(make_event)

    filters = EventFilters(start_date=BASE + timedelta(days=2), end_date=BASE + timedelta(days=3))
    result = EventService.list_events(db_session, filters, page=1, limit=10)

    assert listed_names(result) == ["Data Talk", "Advanced SQL"]


def test_search_treats_wildcards_literally(db_session, make_event):
    seed_events(make_event)
    make_event(name="100% Coverage", description="Testing", date_time=BASE + timedelta(days=20))

    result = EventService.list_events(db_session, EventFilters(search="100%"), page=1, limit=10)

    assert listed_names(result) == ["100% Coverage"]


def test_pagination_pages_through_results(db_session, make_event):
    seed_events(make_event)

    page_two = EventService.list_events(db_session, EventFilters(), page=2, limit=3)

    assert listed_names(page_two) == ["Rust Meetup"]
    assert page_two.value["pagination"] == {"page": 2, "limit": 3, "total": 4, "pages": 2}


def test_listing_reports_occupancy_without_attendee_details(db_session, make_event):
    make_event(quota=4, attendees=[{
        "id": "att-1", "user_id": "user-a", "email": "a@example.com", "name": "A",
        "registered_at": "2031-01-01T10:00:00", "attended": False,
    }])

    event = EventService.list_events(db_session, EventFilters(), page=1, limit=10).value["events"][0]

    assert "attendees" not in event
    assert event["registered_count"] == 1
    assert event["available_slots"] == 3


def test_document_predicate_mirrors_sql_filters():
    document = {
        "id": "e1",
        "name": "Python Basics",
        "description": "First steps",
        "category": "Workshop",
        "level": "entry level",
        "status": "open",
        "date_time": "2031-03-02T09:00:00",
    }

    assert matches(document, EventFilters())
    assert matches(document, EventFilters(search="  BASICS "))
    assert matches(document, EventFilters(category="Workshop", status="open"))
    assert not matches(document, EventFilters(category="Talk"))
    assert not matches(document, EventFilters(search="rust"))
    assert matches(document, EventFilters(start_date=datetime(2031, 3, 2, 9, 0)))
    assert not matches(document, EventFilters(end_date=datetime(2031, 3, 1)))


def test_document_sort_is_stable_on_ties():
    documents = [
        {"id": "b", "date_time": "2031-03-02T09:00:00", "created_at": "2030-01-01T00:00:00"},
        {"id": "a", "date_time": "2031-03-02T09:00:00", "created_at": "2030-01-01T00:00:00"},
        {"id": "c", "date_time": "2031-03-01T09:00:00", "created_at": "2030-06-01T00:00:00"},
    ]

    assert [d["id"] for d in sorted(documents, key=sort_key)] == ["c", "a", "b"]


def test_paginate_and_meta():
    items = list(range(7))

    assert paginate(items, 3, 3) == [6]
    assert paginate(items, 4, 3) == []
    assert pagination_meta(1, 3, 7)["pages"] == 3
    assert pagination_meta(1, 10, 0)["pages"] == 0
