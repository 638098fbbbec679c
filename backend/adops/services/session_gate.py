"""
Request-time authorization checks against the established session.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adops.config import get_settings
from adops.exceptions import ForbiddenError, UnauthorizedError
from adops.models import User, UserRole, UserStatus
from adops.services.user_service import new_user_id
from adops.utils.masking import mask_email

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionIdentity:
    """Who the current request acts as."""

    user_id: str
    email: str
    role: UserRole


def is_bootstrap_admin(email: str) -> bool:
    """
    Exact match against the single configured bootstrap admin address.

    Never widen this to a domain or pattern match.
    """
    return email == get_settings().bootstrap_admin_email


def require_session(identity: Optional[SessionIdentity]) -> SessionIdentity:
    """Fail with 401 unless a session identity is bound."""
    if identity is None:
        raise UnauthorizedError()
    return identity


def require_role(
    identity: Optional[SessionIdentity],
    allowed_roles: Iterable[UserRole],
) -> SessionIdentity:
    """Fail with 403 unless the identity's role is allowed (or it is the bootstrap admin)."""
    identity = require_session(identity)

    if is_bootstrap_admin(identity.email):
        return identity

    if identity.role not in set(allowed_roles):
        logger.warning(
            "access_denied",
            email=mask_email(identity.email),
            role=identity.role.value,
        )
        raise ForbiddenError()

    return identity


async def seed_bootstrap_admin(session: AsyncSession) -> User:
    """
    Provision the bootstrap admin with an explicit Admin role.

    Runs at startup so the account's rights come from its stored role.
    """
    email = get_settings().bootstrap_admin_email
    result = await session.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None:
        user = User(id=new_user_id(), email=email, name="Admin", role=UserRole.ADMIN)
        session.add(user)
        logger.info("bootstrap_admin_created", email=mask_email(email))
    elif user.role != UserRole.ADMIN or user.status != UserStatus.ACTIVE:
        user.role = UserRole.ADMIN
        user.status = UserStatus.ACTIVE
        logger.info("bootstrap_admin_promoted", email=mask_email(email))

    await session.flush()
    return user
