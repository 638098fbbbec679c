"""
TaxInvoice model for electronic tax invoices (전자세금계산서).
"""

import enum
from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from adops.database import Base


class InvoiceType(str, enum.Enum):
    """Document type."""

    TAX_INVOICE = "세금계산서"
    MODIFIED_TAX_INVOICE = "수정세금계산서"
    INVOICE = "계산서"  # 면세 계산서
    MODIFIED_INVOICE = "수정계산서"

    @property
    def is_amendment(self) -> bool:
        return self in (InvoiceType.MODIFIED_TAX_INVOICE, InvoiceType.MODIFIED_INVOICE)


class TaxType(str, enum.Enum):
    """Tax classification, sent to the provider verbatim."""

    TAXABLE = "과세"
    ZERO_RATED = "영세"
    EXEMPT = "면세"


class PurposeType(str, enum.Enum):
    RECEIPT = "영수"
    CHARGE = "청구"


class InvoiceStatus(str, enum.Enum):
    """
    Local issuance state.

    작성중 -> 발행완료 | 발행실패; 취소 only from 작성중 or 발행실패.
    """

    DRAFTING = "작성중"
    ISSUED = "발행완료"
    FAILED = "발행실패"
    CANCELLED = "취소"


class TaxInvoice(Base):
    """
    Tax invoice record.

    ``status`` is written only by InvoiceLifecycleManager. ``nts_confirm_num``
    is set iff status is 발행완료; ``error_message`` iff status is 발행실패.
    """

    __tablename__ = "tax_invoices"

    # Primary Key - Format: "TI-<hex>"
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    # Provider correlation key, max 24 chars
    mgt_key: Mapped[str] = mapped_column(String(24), unique=True, nullable=False)

    advertiser_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("advertisers.id"), nullable=False, index=True
    )

    # Classification
    invoice_type: Mapped[InvoiceType] = mapped_column(Enum(InvoiceType), nullable=False)
    tax_type: Mapped[TaxType] = mapped_column(Enum(TaxType), nullable=False)
    purpose_type: Mapped[PurposeType] = mapped_column(
        Enum(PurposeType), default=PurposeType.RECEIPT
    )
    write_date: Mapped[date] = mapped_column(Date, nullable=False)  # 작성일자

    # Amounts (원 단위)
    supply_price_total: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_total: Mapped[int] = mapped_column(Integer, nullable=False)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)

    # Structured content
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    issuer_info: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)  # 공급자
    recipient_info: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)  # 공급받는자
    remark: Mapped[Optional[str]] = mapped_column(Text)

    # Amendment reference (수정세금계산서 / 수정계산서 only)
    modify_code: Mapped[Optional[int]] = mapped_column(Integer)
    original_nts_confirm_num: Mapped[Optional[str]] = mapped_column(String(50))

    # State
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus), default=InvoiceStatus.DRAFTING, nullable=False
    )
    nts_confirm_num: Mapped[Optional[str]] = mapped_column(String(50))  # 국세청 승인번호
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    print_url: Mapped[Optional[str]] = mapped_column(String(1000))

    # Set when an issue call failed in transport; outcome at the provider unknown
    pending_reconciliation: Mapped[bool] = mapped_column(Boolean, default=False)
    last_transport_error: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, onupdate=datetime.utcnow)
    issue_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    def __repr__(self) -> str:
        return f"<TaxInvoice {self.id}: {self.mgt_key} {self.total_amount:,}원 {self.status.value}>"
