"""
Pydantic request/response models shared by the API and services.
"""

from adops.schemas.advertiser import AdvertiserCreate, AdvertiserResponse
from adops.schemas.tax_invoice import (
    InvoiceItemIn,
    PartyInfo,
    TaxInvoiceDraft,
    TaxInvoiceResponse,
)
from adops.schemas.user import UserCreate, UserResponse, UserUpdate

__all__ = [
    "AdvertiserCreate",
    "AdvertiserResponse",
    "InvoiceItemIn",
    "PartyInfo",
    "TaxInvoiceDraft",
    "TaxInvoiceResponse",
    "UserCreate",
    "UserResponse",
    "UserUpdate",
]
