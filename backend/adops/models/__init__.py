"""
SQLAlchemy models for the ad operations console.
"""

from adops.models.advertiser import Advertiser
from adops.models.tax_invoice import (
    InvoiceStatus,
    InvoiceType,
    PurposeType,
    TaxInvoice,
    TaxType,
)
from adops.models.user import EDITOR_ROLES, User, UserRole, UserStatus

__all__ = [
    "Advertiser",
    "TaxInvoice",
    "InvoiceStatus",
    "InvoiceType",
    "TaxType",
    "PurposeType",
    "User",
    "UserRole",
    "UserStatus",
    "EDITOR_ROLES",
]
