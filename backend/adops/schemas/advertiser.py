"""
Pydantic models for advertisers.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from adops.schemas.tax_invoice import business_number_digits


class AdvertiserCreate(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    business_number: Optional[str] = None
    ceo_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    status: str = "문의중"

    @field_validator("business_number")
    @classmethod
    def check_business_number(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return business_number_digits(value)


class AdvertiserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    company_name: str
    business_number: Optional[str]
    ceo_name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    status: str
    created_at: datetime
