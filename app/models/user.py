"""
User model (read-only directory of registered users)
"""

from enum import Enum

from sqlalchemy import Column, String, DateTime

from app.core.db import Base
from app.utils.timeutils import utcnow


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class User(Base):
    __tablename__ = "users"
    
    id = Column(String(64), primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    created_at = Column(DateTime, default=utcnow)
