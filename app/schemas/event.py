"""
Event-related Pydantic schemas
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, field_validator

from app.models.event import EventLevel, EventStatus
from app.utils.timeutils import to_utc_naive, utcnow


def _normalize_level(value):
    return value.strip().lower() if isinstance(value, str) else value


class EventCreate(BaseModel):
    """Schema for creating an event"""
    category: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1)
    language: str = Field(..., min_length=1, max_length=50)
    location: str = Field(..., min_length=1, max_length=255)
    duration: float = Field(..., ge=0.5)
    lecturers: int = Field(..., ge=1)
    quota: int = Field(..., ge=1)
    date_time: datetime
    items: List[str] = []
    level: EventLevel
    assessment: bool = False
    status: Optional[EventStatus] = None
    
    class Config:
        str_strip_whitespace = True
    
    @field_validator("level", mode="before")
    @classmethod
    def lowercase_level(cls, value):
        return _normalize_level(value)
    
    @field_validator("date_time")
    @classmethod
    def date_time_in_future(cls, value: datetime) -> datetime:
        value = to_utc_naive(value)
        if value <= utcnow():
            raise ValueError("Event date must be in the future")
        return value


class EventUpdate(BaseModel):
    """Schema for updating an event; only the fields sent are changed"""
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1)
    language: Optional[str] = Field(None, min_length=1, max_length=50)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    duration: Optional[float] = Field(None, ge=0.5)
    lecturers: Optional[int] = Field(None, ge=1)
    quota: Optional[int] = Field(None, ge=1)
    date_time: Optional[datetime] = None
    items: Optional[List[str]] = None
    level: Optional[EventLevel] = None
    assessment: Optional[bool] = None
    status: Optional[EventStatus] = None
    
    class Config:
        str_strip_whitespace = True
    
    @field_validator("level", mode="before")
    @classmethod
    def lowercase_level(cls, value):
        return _normalize_level(value)
    
    @field_validator("date_time")
    @classmethod
    def normalize_date_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc_naive(value) if value is not None else None
