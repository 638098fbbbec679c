"""
User model for console operators.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from adops.database import Base


class UserRole(str, enum.Enum):
    """Operator role."""

    ADMIN = "Admin"
    USER = "User"
    READ_ONLY = "ReadOnly"


class UserStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


# Roles allowed to change records
EDITOR_ROLES = frozenset({UserRole.ADMIN, UserRole.USER})


class User(Base):
    """
    Console operator.

    Login is passwordless: a magic link is mailed to ``email`` and the
    session is bound to this record once the link is verified.
    """

    __tablename__ = "users"

    # Primary Key - Format: "USR-<hex>"
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), default=UserRole.USER)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus), default=UserStatus.ACTIVE)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} ({self.role.value})>"
