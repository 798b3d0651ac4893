"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .attendee import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "EventCreate",
    "EventUpdate",
    "RegisterRequest",
    "AttendanceUpdate",
]
