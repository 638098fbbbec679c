"""
Pydantic models for console operators.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from adops.models import UserRole, UserStatus


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str]
    role: UserRole
    status: UserStatus
    created_at: datetime
    last_login_at: Optional[datetime]


class UserCreate(BaseModel):
    email: EmailStr
    name: Optional[str] = None
    role: UserRole = UserRole.USER


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
