"""
Database models package
"""

from .event import Event, EventLevel, EventStatus, TERMINAL_STATUSES
from .user import User, UserRole

__all__ = ["Event", "EventLevel", "EventStatus", "TERMINAL_STATUSES", "User", "UserRole"]
