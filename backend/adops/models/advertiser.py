"""
Advertiser model.

Only the fields tax invoices need. Records are registered through
`POST /advertisers`; editing and pipeline stages are handled elsewhere.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from adops.database import Base


class Advertiser(Base):
    """Advertiser (광고주) record."""

    __tablename__ = "advertisers"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_number: Mapped[Optional[str]] = mapped_column(String(20))  # 사업자등록번호
    ceo_name: Mapped[Optional[str]] = mapped_column(String(100))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(30), default="문의중")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Advertiser {self.id}: {self.company_name}>"
