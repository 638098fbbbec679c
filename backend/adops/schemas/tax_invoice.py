"""
Pydantic models for tax invoice drafts and responses.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from adops.models import InvoiceStatus, InvoiceType, PurposeType, TaxType


def business_number_digits(value: str) -> str:
    """사업자등록번호 without dashes; must be 10 digits."""
    digits = value.replace("-", "").strip()
    if len(digits) != 10 or not digits.isdigit():
        raise ValueError("사업자등록번호는 10자리 숫자여야 합니다")
    return digits


class PartyInfo(BaseModel):
    """공급자 / 공급받는자 정보."""

    corp_num: str = Field(..., description="사업자등록번호 (10 digits, dashes allowed)")
    tax_reg_id: Optional[str] = None  # 종사업장번호
    corp_name: str = Field(..., min_length=1)
    ceo_name: str = ""
    addr: str = ""
    biz_type: str = Field(..., min_length=1)  # 업태
    biz_class: str = Field(..., min_length=1)  # 종목
    contact_name: str = ""
    tel_num: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None

    @field_validator("corp_num")
    @classmethod
    def check_corp_num(cls, value: str) -> str:
        return business_number_digits(value)


class InvoiceItemIn(BaseModel):
    """품목. Missing amounts are derived from qty and unit price."""

    item_name: str = Field(..., min_length=1)
    spec: str = ""
    qty: int = Field(1, ge=1)
    unit_price: int = Field(0, ge=0)
    supply_price: Optional[int] = Field(None, ge=0)
    tax: Optional[int] = Field(None, ge=0)
    purchase_date: Optional[date] = None
    remark: str = ""


class TaxInvoiceDraft(BaseModel):
    """Finalized invoice data, ready to be saved in 작성중."""

    advertiser_id: str
    invoice_type: InvoiceType = InvoiceType.TAX_INVOICE
    tax_type: TaxType = TaxType.TAXABLE
    purpose_type: PurposeType = PurposeType.RECEIPT
    write_date: date
    items: list[InvoiceItemIn] = Field(..., min_length=1, max_length=99)
    issuer_info: PartyInfo
    recipient_info: PartyInfo
    remark: Optional[str] = None

    # 수정세금계산서 / 수정계산서
    modify_code: Optional[int] = Field(None, ge=1, le=6)
    original_nts_confirm_num: Optional[str] = None

    @model_validator(mode="after")
    def check_classification(self) -> "TaxInvoiceDraft":
        is_plain_invoice = self.invoice_type in (InvoiceType.INVOICE, InvoiceType.MODIFIED_INVOICE)
        if is_plain_invoice and self.tax_type != TaxType.EXEMPT:
            raise ValueError("계산서는 면세 거래에만 발행할 수 있습니다")
        if not is_plain_invoice and self.tax_type == TaxType.EXEMPT:
            raise ValueError("면세 거래는 계산서로 발행해야 합니다")

        if self.invoice_type.is_amendment:
            if self.modify_code is None or not self.original_nts_confirm_num:
                raise ValueError("수정세금계산서는 수정사유코드와 당초 승인번호가 필요합니다")
        elif self.modify_code is not None or self.original_nts_confirm_num:
            raise ValueError("수정사유코드는 수정세금계산서에만 사용할 수 있습니다")
        return self


class TaxInvoiceResponse(BaseModel):
    """Tax invoice as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    mgt_key: str
    advertiser_id: str
    invoice_type: InvoiceType
    tax_type: TaxType
    purpose_type: PurposeType
    write_date: date
    supply_price_total: int
    tax_total: int
    total_amount: int
    items: list[dict]
    issuer_info: dict
    recipient_info: dict
    remark: Optional[str]
    modify_code: Optional[int]
    original_nts_confirm_num: Optional[str]
    status: InvoiceStatus
    nts_confirm_num: Optional[str]
    error_message: Optional[str]
    print_url: Optional[str]
    pending_reconciliation: bool
    last_transport_error: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime]
    issue_attempted_at: Optional[datetime]
    issued_at: Optional[datetime]
    cancelled_at: Optional[datetime]
