"""
Fiscal lookups not tied to a single invoice.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from adops.api.deps import require_identity
from adops.services.fiscal_client import FiscalClient, get_fiscal_client

router = APIRouter(prefix="/fiscal", tags=["fiscal"])


# === Pydantic Models ===


class CheckBusinessRequest(BaseModel):
    corp_num: str = Field(..., description="사업자등록번호")

    @field_validator("corp_num")
    @classmethod
    def check_corp_num(cls, value: str) -> str:
        digits = value.replace("-", "").strip()
        if len(digits) != 10 or not digits.isdigit():
            raise ValueError("사업자등록번호는 10자리 숫자여야 합니다")
        return digits


class CheckBusinessResponse(BaseModel):
    corp_num: str
    state: Optional[str]
    state_label: str
    company_name: Optional[str]
    checked_at: Optional[str]


# === Endpoints ===


@router.post("/check-business", response_model=CheckBusinessResponse)
async def check_business(
    body: CheckBusinessRequest,
    _=Depends(require_identity),
    fiscal_client: FiscalClient = Depends(get_fiscal_client),
):
    """휴폐업조회: registration state of a business number."""
    status = await fiscal_client.check_business_status(body.corp_num)
    return CheckBusinessResponse(
        corp_num=status.business_number,
        state=status.state,
        state_label=status.state_label,
        company_name=status.company_name,
        checked_at=status.checked_at,
    )
