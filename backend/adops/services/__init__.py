"""
Business logic services for the ad operations console.
"""

from adops.services.auth_service import AuthService
from adops.services.email_service import EmailService
from adops.services.fiscal_client import FiscalClient
from adops.services.invoice_lifecycle import InvoiceLifecycleManager
from adops.services.token_store import TokenStore
from adops.services.user_service import UserService

__all__ = [
    "AuthService",
    "EmailService",
    "FiscalClient",
    "InvoiceLifecycleManager",
    "TokenStore",
    "UserService",
]
