"""
Tax invoice API endpoints.

Create drafts, issue them through the e-tax-invoice provider, query and
reconcile provider state, cancel.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from adops.api.deps import get_invoice_manager, require_editor, require_identity
from adops.exceptions import FiscalRejectedError
from adops.models import InvoiceStatus
from adops.schemas import TaxInvoiceDraft, TaxInvoiceResponse
from adops.services.fiscal_client import FiscalStatus
from adops.services.invoice_lifecycle import InvoiceLifecycleManager

router = APIRouter(prefix="/invoices", tags=["invoices"])


# === Pydantic Models ===


class InvoiceListResponse(BaseModel):
    invoices: list[TaxInvoiceResponse]
    total: int


class RemoteStatusResponse(BaseModel):
    """Provider-side state of an invoice."""

    mgt_key: str
    state_code: int
    state: str
    state_datetime: Optional[str]
    nts_confirm_num: Optional[str]
    is_issued: bool


class InvoiceStatusResponse(BaseModel):
    invoice: TaxInvoiceResponse
    found: bool
    remote: Optional[RemoteStatusResponse] = None


class ReconcileResponse(BaseModel):
    invoice: TaxInvoiceResponse
    found: bool
    healed: bool
    remote: Optional[RemoteStatusResponse] = None


class PrintUrlResponse(BaseModel):
    url: str


# === Helper Functions ===


def remote_to_response(remote: Optional[FiscalStatus]) -> Optional[RemoteStatusResponse]:
    if remote is None:
        return None
    return RemoteStatusResponse(
        mgt_key=remote.mgt_key,
        state_code=remote.state_code,
        state=remote.state,
        state_datetime=remote.state_datetime,
        nts_confirm_num=remote.nts_confirm_num,
        is_issued=remote.is_issued,
    )


# === Endpoints ===


@router.post("", response_model=TaxInvoiceResponse, status_code=201)
async def create_invoice(
    draft: TaxInvoiceDraft,
    _=Depends(require_editor),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """Save a new invoice in 작성중."""
    return await manager.create(draft)


@router.get("", response_model=InvoiceListResponse)
async def list_invoices(
    status: Optional[InvoiceStatus] = Query(None, description="Filter by status"),
    advertiser_id: Optional[str] = Query(None, description="Filter by advertiser"),
    _=Depends(require_identity),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    invoices = await manager.list_invoices(status=status, advertiser_id=advertiser_id)
    return InvoiceListResponse(
        invoices=[TaxInvoiceResponse.model_validate(invoice) for invoice in invoices],
        total=len(invoices),
    )


@router.get("/{invoice_id}", response_model=TaxInvoiceResponse)
async def get_invoice(
    invoice_id: str,
    _=Depends(require_identity),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    return await manager.get(invoice_id)


@router.post("/{invoice_id}/submit", response_model=TaxInvoiceResponse)
async def submit_invoice(
    invoice_id: str,
    _=Depends(require_editor),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """
    Issue the invoice (즉시발행).

    - 200 with the invoice in 발행완료
    - 400 with the provider's message when it rejects the invoice (now 발행실패)
    - 409 when the invoice is not in 작성중
    - 503 when the provider could not be reached; the invoice stays 작성중
      and must be reconciled before it is sent again
    """
    invoice = await manager.submit(invoice_id)
    if invoice.status == InvoiceStatus.FAILED:
        raise FiscalRejectedError(invoice.error_message)
    return invoice


@router.get("/{invoice_id}/status", response_model=InvoiceStatusResponse)
async def get_invoice_status(
    invoice_id: str,
    _=Depends(require_identity),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """Provider-side status. Read only: local state is not changed."""
    remote = await manager.check_status(invoice_id)
    invoice = await manager.get(invoice_id)
    return InvoiceStatusResponse(
        invoice=TaxInvoiceResponse.model_validate(invoice),
        found=remote is not None,
        remote=remote_to_response(remote),
    )


@router.post("/{invoice_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_invoice(
    invoice_id: str,
    _=Depends(require_editor),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """Resolve local state against the provider after a failed issue call."""
    result = await manager.reconcile(invoice_id)
    return ReconcileResponse(
        invoice=TaxInvoiceResponse.model_validate(result.invoice),
        found=result.remote is not None,
        healed=result.healed,
        remote=remote_to_response(result.remote),
    )


@router.get("/{invoice_id}/print-url", response_model=PrintUrlResponse)
async def get_print_url(
    invoice_id: str,
    _=Depends(require_identity),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    url = await manager.refresh_print_url(invoice_id)
    return PrintUrlResponse(url=url)


@router.post("/{invoice_id}/cancel", response_model=TaxInvoiceResponse)
async def cancel_invoice(
    invoice_id: str,
    _=Depends(require_editor),
    manager: InvoiceLifecycleManager = Depends(get_invoice_manager),
):
    """Cancel a 작성중 or 발행실패 invoice. Issued invoices need a 수정세금계산서."""
    return await manager.cancel(invoice_id)
