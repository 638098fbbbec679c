"""
Advertiser API endpoints.

Just enough to register the advertisers that tax invoices reference, plus
the advertiser-scoped invoice listing.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adops.api.deps import get_invoice_manager, require_editor, require_identity
from adops.api.invoices import InvoiceListResponse
from adops.database import get_session
from adops.exceptions import NotFoundError
from adops.models import Advertiser
from adops.schemas import AdvertiserCreate, AdvertiserResponse, TaxInvoiceResponse
from adops.services.invoice_lifecycle import InvoiceLifecycleManager
from adops.services.session_gate import SessionIdentity
from adops.utils.masking import mask_business_number, mask_email

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/advertisers", tags=["advertisers"])


async def get_advertiser_or_404(session: AsyncSession, advertiser_id: str) -> Advertiser:
    advertiser = await session.get(Advertiser, advertiser_id)
    if not advertiser:
        raise NotFoundError("광고주를 찾을 수 없습니다")
    return advertiser


@router.get("", response_model=list[AdvertiserResponse])
async def list_advertisers(
    _=Depends(require_identity),
    session: AsyncSession = Depends(get_session),
):
    result = await session.execute(select(Advertiser).order_by(Advertiser.created_at.desc()))
    return list(result.scalars().all())


@router.post("", response_model=AdvertiserResponse, status_code=201)
async def create_advertiser(
    body: AdvertiserCreate,
    editor: SessionIdentity = Depends(require_editor),
    session: AsyncSession = Depends(get_session),
):
    """Register an advertiser so invoices can be drafted for it."""
    advertiser = Advertiser(id=f"ADV-{uuid.uuid4().hex[:12]}", **body.model_dump())
    session.add(advertiser)
    await session.commit()
    await session.refresh(advertiser)

    logger.info(
        "advertiser_created",
        advertiser_id=advertiser.id,
        business_number=mask_business_number(advertiser.business_number or ""),
        by=mask_email(editor.email),
    )
    return advertiser


@router.get("/{advertiser_id}", response_model=AdvertiserResponse)
async def get_advertiser(
    advertiser_id: str,
    _=Depends(require_identity),
    session: AsyncSession = Depends(get_session),
):
    return await get_advertiser_or_404(session, advertiser_id)


@router.get("/{advertiser_id}/invoices", response_model=InvoiceListResponse)
async def list_advertiser_invoices(
    advertiser_id: str,
    _=Depends(require_identity),
    session: AsyncSession = Depends(get_session),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """All invoices for one advertiser, newest first."""
    await get_advertiser_or_404(session, advertiser_id)

    invoices = await manager.list_invoices(advertiser_id=advertiser_id)
    return InvoiceListResponse(
        invoices=[TaxInvoiceResponse.model_validate(invoice) for invoice in invoices],
        total=len(invoices),
    )
