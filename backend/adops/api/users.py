"""
Operator provisioning (Admin only).
"""

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from adops.api.deps import require_admin
from adops.database import get_session
from adops.schemas import UserCreate, UserResponse, UserUpdate
from adops.services.session_gate import SessionIdentity
from adops.services.user_service import UserService
from adops.utils.masking import mask_email

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserResponse])
async def list_users(
    _=Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return await UserService(session).list_users()


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: UserCreate,
    admin: SessionIdentity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Register an operator so they can request login links."""
    user = await UserService(session).create(email=body.email, name=body.name, role=body.role)
    await session.commit()

    logger.info(
        "user_created",
        email=mask_email(user.email),
        role=user.role.value,
        by=mask_email(admin.email),
    )
    return user


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    body: UserUpdate,
    admin: SessionIdentity = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Change an operator's name, role or status."""
    user = await UserService(session).update(
        user_id,
        name=body.name,
        role=body.role,
        status=body.status,
    )
    await session.commit()
    await session.refresh(user)

    logger.info(
        "user_updated",
        email=mask_email(user.email),
        role=user.role.value,
        status=user.status.value,
        by=mask_email(admin.email),
    )
    return user
