"""
Operator account lookups and provisioning.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adops.exceptions import NotFoundError, ValidationFailedError
from adops.models import User, UserRole, UserStatus


def new_user_id() -> str:
    return f"USR-{uuid.uuid4().hex[:12]}"


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Operator CRUD used by login and the admin screens."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> User:
        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("사용자를 찾을 수 없습니다")
        return user

    async def list_users(self) -> list[User]:
        result = await self.session.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def create(
        self,
        email: str,
        name: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        if await self.get_by_email(email):
            raise ValidationFailedError("이미 등록된 이메일입니다")

        user = User(id=new_user_id(), email=normalize_email(email), name=name, role=role)
        self.session.add(user)
        await self.session.flush()
        return user

    async def update(
        self,
        user_id: str,
        name: Optional[str] = None,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
    ) -> User:
        user = await self.get(user_id)
        if name is not None:
            user.name = name
        if role is not None:
            user.role = role
        if status is not None:
            user.status = status
        await self.session.flush()
        return user
