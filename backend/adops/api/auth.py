"""
Magic-link login API endpoints.

Request a login link, redeem it into a session cookie, inspect and clear
the session.
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from adops.api.deps import SESSION_USER_KEY, get_auth_service, get_current_identity
from adops.config import get_settings
from adops.database import get_session
from adops.exceptions import ForbiddenError, UnauthorizedError
from adops.models import User
from adops.schemas import UserResponse
from adops.services.auth_service import AuthService
from adops.services.session_gate import SessionIdentity, is_bootstrap_admin, require_session
from adops.services.user_service import UserService, normalize_email
from adops.utils.masking import mask_email

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# === Pydantic Models ===


class RequestLinkRequest(BaseModel):
    email: EmailStr


class RequestLinkResponse(BaseModel):
    success: bool
    message: str
    auto_login: bool = False
    user: Optional[UserResponse] = None


class SessionResponse(BaseModel):
    success: bool
    user: UserResponse


class CurrentUserResponse(BaseModel):
    user: UserResponse
    is_bootstrap_admin: bool


# === Helper Functions ===


async def start_session(request: Request, session: AsyncSession, email: str) -> User:
    """Bind the verified email's user to the session cookie."""
    user = await UserService(session).get_by_email(email)
    if user is None or not user.is_active:
        # Deactivated between link request and click
        raise UnauthorizedError()

    user.last_login_at = datetime.utcnow()
    await session.commit()

    request.session.clear()
    request.session[SESSION_USER_KEY] = user.id
    logger.info("session_started", email=mask_email(user.email), role=user.role.value)
    return user


# === Endpoints ===


@router.post("/request-link", response_model=RequestLinkResponse)
async def request_link(
    body: RequestLinkRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Mail a one-time login link to a registered, active operator.

    With ``AUTH_DEV_AUTO_LOGIN`` on, the link is redeemed in-process and
    the session is started immediately; nothing is mailed.
    """
    email = normalize_email(body.email)
    user = await UserService(session).get_by_email(email)
    if user is None or not user.is_active:
        logger.warning("login_link_refused", email=mask_email(email))
        raise ForbiddenError("이 이메일 주소는 등록되지 않았습니다. 관리자에게 문의하세요.")

    if get_settings().auth_dev_auto_login:
        token = await auth.request_link(email, deliver=False)
        verified_email = await auth.verify(token)
        user = await start_session(request, session, verified_email)
        return RequestLinkResponse(
            success=True,
            message="자동 로그인되었습니다.",
            auto_login=True,
            user=UserResponse.model_validate(user),
        )

    await auth.request_link(email)
    return RequestLinkResponse(success=True, message="인증 링크가 이메일로 발송되었습니다.")


@router.get("/verify", response_model=SessionResponse)
async def verify(
    request: Request,
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
    auth: AuthService = Depends(get_auth_service),
):
    """Redeem a magic-link token. Every failure answers the same 401."""
    email = await auth.verify(token)
    user = await start_session(request, session, email)
    return SessionResponse(success=True, user=UserResponse.model_validate(user))


@router.get("/user", response_model=CurrentUserResponse)
async def current_user(
    identity: Optional[SessionIdentity] = Depends(get_current_identity),
    session: AsyncSession = Depends(get_session),
):
    """Current operator."""
    identity = require_session(identity)
    user = await UserService(session).get(identity.user_id)
    return CurrentUserResponse(
        user=UserResponse.model_validate(user),
        is_bootstrap_admin=is_bootstrap_admin(user.email),
    )


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True}
