"""
Registration and attendance Pydantic schemas
"""

from typing import Optional
from pydantic import BaseModel, EmailStr, Field

class RegisterRequest(BaseModel):
    """Optional contact details overriding the user's profile"""
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    
    class Config:
        str_strip_whitespace = True

class AttendanceUpdate(BaseModel):
    """Attendance flag for a registered attendee"""
    attended: bool
