"""
Event listing filters shared by the SQL and Firestore repositories
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import or_

from app.models import Event
from app.utils.timeutils import parse_timestamp, to_utc_naive


@dataclass
class EventFilters:
    """Listing criteria; every populated field must match (AND)"""
    category: Optional[str] = None
    level: Optional[str] = None
    status: Optional[str] = None
    search: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def __post_init__(self):
        if self.search is not None:
            self.search = self.search.strip() or None
        if self.start_date is not None:
            self.start_date = to_utc_naive(self.start_date)
        if self.end_date is not None:
            self.end_date = to_utc_naive(self.end_date)


def like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def apply_filters(query, filters: EventFilters):
    """Narrow a SQLAlchemy Event query by the given filters"""
    if filters.category:
        query = query.filter(Event.category == filters.category)
    if filters.level:
        query = query.filter(Event.level == filters.level)
    if filters.status:
        query = query.filter(Event.status == filters.status)
    if filters.search:
        pattern = like_pattern(filters.search)
        query = query.filter(or_(
            Event.name.ilike(pattern, escape="\\"),
            Event.description.ilike(pattern, escape="\\"),
        ))
    if filters.start_date:
        query = query.filter(Event.date_time >= filters.start_date)
    if filters.end_date:
        query = query.filter(Event.date_time <= filters.end_date)
    return query


def order_events(query):
    return query.order_by(Event.date_time.asc(), Event.created_at.asc(), Event.id.asc())


def matches(document: Mapping[str, Any], filters: EventFilters) -> bool:
    """In-memory equivalent of apply_filters for event documents"""
    if filters.category and document.get("category") != filters.category:
        return False
    if filters.level and document.get("level") != filters.level:
        return False
    if filters.status and document.get("status") != filters.status:
        return False
    if filters.search:
        needle = filters.search.lower()
        name = (document.get("name") or "").lower()
        description = (document.get("description") or "").lower()
        if needle not in name and needle not in description:
            return False
    if filters.start_date or filters.end_date:
        date_time = parse_timestamp(document.get("date_time"))
        if date_time is None:
            return False
        if filters.start_date and date_time < filters.start_date:
            return False
        if filters.end_date and date_time > filters.end_date:
            return False
    return True


def sort_key(document: Mapping[str, Any]):
    return (
        parse_timestamp(document.get("date_time")) or datetime.max,
        parse_timestamp(document.get("created_at")) or datetime.min,
        str(document.get("id") or ""),
    )


def paginate(items: Sequence[Any], page: int, limit: int) -> List[Any]:
    offset = (page - 1) * limit
    return list(items[offset:offset + limit])


def pagination_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": (total + limit - 1) // limit,
    }
