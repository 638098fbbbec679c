"""
Shared FastAPI dependencies: services and the session identity.
"""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from adops.database import get_session
from adops.exceptions import UnauthorizedError
from adops.models import EDITOR_ROLES, User, UserRole
from adops.services.auth_service import AuthService
from adops.services.email_service import EmailService, get_email_service
from adops.services.fiscal_client import FiscalClient, get_fiscal_client
from adops.services.invoice_lifecycle import InvoiceLifecycleManager
from adops.services.session_gate import SessionIdentity, require_role, require_session
from adops.services.token_store import TokenStore, get_token_store

SESSION_USER_KEY = "user_id"


def get_auth_service(
    store: TokenStore = Depends(get_token_store),
    mailer: EmailService = Depends(get_email_service),
) -> AuthService:
    return AuthService(store=store, mailer=mailer)


def get_invoice_manager(
    session: AsyncSession = Depends(get_session),
    fiscal_client: FiscalClient = Depends(get_fiscal_client),
) -> InvoiceLifecycleManager:
    return InvoiceLifecycleManager(session=session, fiscal_client=fiscal_client)


async def get_current_identity(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> Optional[SessionIdentity]:
    """
    Resolve the session cookie to an identity.

    The role is read from the database on every request so role changes
    and deactivation take effect without a new login.
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if not user_id:
        return None

    user = await session.get(User, user_id)
    if user is None or not user.is_active:
        request.session.clear()
        raise UnauthorizedError()

    return SessionIdentity(user_id=user.id, email=user.email, role=user.role)


async def require_identity(
    identity: Optional[SessionIdentity] = Depends(get_current_identity),
) -> SessionIdentity:
    return require_session(identity)


def require_roles(*roles: UserRole):
    """Dependency factory: 401 without a session, 403 outside ``roles``."""

    async def dependency(
        identity: Optional[SessionIdentity] = Depends(get_current_identity),
    ) -> SessionIdentity:
        return require_role(identity, roles)

    return dependency


require_editor = require_roles(*EDITOR_ROLES)
require_admin = require_roles(UserRole.ADMIN)
