"""
Security utilities and authentication
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.db import get_db
from app.models import UserRole
from app.services.repositories import UserRepo, use_firestore
from app.utils.responses import unauthorized_error

# Simple in-memory rate limiter
rate_limiter = defaultdict(list)

security = HTTPBearer()


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the authenticated caller"""
    id: str
    email: str
    name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @classmethod
    def from_record(cls, record) -> "CurrentUser":
        if isinstance(record, Mapping):
            return cls(
                id=str(record["id"]),
                email=record["email"],
                name=record["name"],
                role=record.get("role") or UserRole.USER.value,
            )
        return cls(id=str(record.id), email=record.email, name=record.name, role=record.role)


def create_access_token(user_id: str, role: str, expires_minutes: Optional[int] = None) -> str:
    """Sign a bearer token for ``user_id``"""
    minutes = expires_minutes if expires_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
    payload = {
        "sub": str(user_id),
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> CurrentUser:
    """Resolve the bearer token to a user from the user directory"""
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub") if payload else None
    if not user_id:
        unauthorized_error("Invalid or expired token")
    
    if use_firestore():
        user = UserRepo.get_by_id_fs(user_id)
    else:
        user = UserRepo.get_by_id_sql(db, user_id)
    if user is None:
        unauthorized_error("User not found")
    return CurrentUser.from_record(user)


def can_manage_event(record, user: CurrentUser) -> bool:
    """Only the event's creator or an admin may change it"""
    created_by = record.get("created_by") if isinstance(record, Mapping) else record.created_by
    return user.is_admin or str(created_by) == user.id


def rate_limit_check(client_ip: str, limit: int = None) -> bool:
    """Simple rate limiting by IP address"""
    if limit is None:
        limit = settings.RATE_LIMIT_PER_MINUTE
    
    current_time = time.time()
    minute_ago = current_time - 60
    
    # Clean old requests
    rate_limiter[client_ip] = [
        req_time for req_time in rate_limiter[client_ip] 
        if req_time > minute_ago
    ]
    
    if len(rate_limiter[client_ip]) >= limit:
        return False
    
    rate_limiter[client_ip].append(current_time)
    return True


def get_client_ip(request) -> str:
    """Extract client IP from request"""
    # Reverse proxy headers first
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    
    return request.client.host
