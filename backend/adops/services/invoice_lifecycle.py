"""
Tax invoice lifecycle: create, issue, reconcile, cancel.

This is the only code that writes ``TaxInvoice.status``. Every status write
is a conditional UPDATE on the expected current status, and all work on one
``mgt_key`` is serialized by a per-key lock so a reconcile never interleaves
with an in-flight issue call.

Issuance at the provider is not idempotent. When an issue call fails in
transport, the invoice stays 작성중 with ``pending_reconciliation`` set; the
next submit or an explicit reconcile asks the provider before anything is
sent again.
"""

import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from adops.exceptions import (
    ConcurrentModificationError,
    FiscalRejectedError,
    FiscalServiceUnavailableError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
)
from adops.models import Advertiser, InvoiceStatus, TaxInvoice, TaxType
from adops.schemas import InvoiceItemIn, TaxInvoiceDraft
from adops.services.fiscal_client import FiscalClient, FiscalStatus, IssueRequest
from adops.utils.keyed_lock import KeyedLock

logger = structlog.get_logger(__name__)

VAT_RATE = Decimal("0.1")

# Shared by every manager instance in the process
_mgt_key_locks = KeyedLock()


def new_invoice_id() -> str:
    return f"TI-{uuid.uuid4().hex[:16]}"


def generate_mgt_key(now: Optional[datetime] = None) -> str:
    """
    Unique provider management key: ``INV`` + timestamp + 6 hex chars.

    23 characters, inside the provider's 24-char limit.
    """
    now = now or datetime.now()
    return f"INV{now:%Y%m%d%H%M%S}{secrets.token_hex(3)}"


def compute_item(item: InvoiceItemIn, tax_type: TaxType) -> dict[str, Any]:
    """Fill in supply price and tax for one line item."""
    supply_price = item.supply_price if item.supply_price is not None else item.qty * item.unit_price

    if item.tax is not None:
        tax = item.tax
    elif tax_type == TaxType.TAXABLE:
        tax = int((Decimal(supply_price) * VAT_RATE).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        tax = 0

    data = item.model_dump(mode="json")
    data.update(supply_price=supply_price, tax=tax)
    return data


@dataclass
class ReconcileResult:
    invoice: TaxInvoice
    remote: Optional[FiscalStatus]
    healed: bool = False


class InvoiceLifecycleManager:
    """
    Moves TaxInvoice records through 작성중 -> 발행완료 | 발행실패, and
    작성중 | 발행실패 -> 취소.
    """

    def __init__(
        self,
        session: AsyncSession,
        fiscal_client: FiscalClient,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.fiscal_client = fiscal_client
        self.clock = clock

    # === Queries ===

    async def get(self, invoice_id: str) -> TaxInvoice:
        invoice = await self.session.get(TaxInvoice, invoice_id)
        if not invoice:
            raise NotFoundError("세금계산서를 찾을 수 없습니다")
        return invoice

    async def list_invoices(
        self,
        status: Optional[InvoiceStatus] = None,
        advertiser_id: Optional[str] = None,
    ) -> list[TaxInvoice]:
        query = select(TaxInvoice)
        if status:
            query = query.where(TaxInvoice.status == status)
        if advertiser_id:
            query = query.where(TaxInvoice.advertiser_id == advertiser_id)
        query = query.order_by(TaxInvoice.created_at.desc())

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def check_status(self, invoice_id: str) -> Optional[FiscalStatus]:
        """Provider-side status, read only."""
        invoice = await self.get(invoice_id)
        return await self.fiscal_client.get_status(invoice.mgt_key)

    # === Transitions ===

    async def create(self, draft: TaxInvoiceDraft) -> TaxInvoice:
        """Persist a new invoice in 작성중 with a fresh ``mgt_key``."""
        advertiser = await self.session.get(Advertiser, draft.advertiser_id)
        if not advertiser:
            raise NotFoundError("광고주를 찾을 수 없습니다")

        items = [compute_item(item, draft.tax_type) for item in draft.items]
        supply_price_total = sum(item["supply_price"] for item in items)
        tax_total = sum(item["tax"] for item in items)

        invoice = TaxInvoice(
            id=new_invoice_id(),
            mgt_key=generate_mgt_key(),
            advertiser_id=advertiser.id,
            invoice_type=draft.invoice_type,
            tax_type=draft.tax_type,
            purpose_type=draft.purpose_type,
            write_date=draft.write_date,
            supply_price_total=supply_price_total,
            tax_total=tax_total,
            total_amount=supply_price_total + tax_total,
            items=items,
            issuer_info=draft.issuer_info.model_dump(mode="json"),
            recipient_info=draft.recipient_info.model_dump(mode="json"),
            remark=draft.remark,
            modify_code=draft.modify_code,
            original_nts_confirm_num=draft.original_nts_confirm_num,
            status=InvoiceStatus.DRAFTING,
        )
        self.session.add(invoice)
        await self.session.commit()
        await self.session.refresh(invoice)

        logger.info(
            "invoice_created",
            invoice_id=invoice.id,
            mgt_key=invoice.mgt_key,
            total_amount=invoice.total_amount,
        )
        return invoice

    async def submit(self, invoice_id: str) -> TaxInvoice:
        """
        Issue the invoice at the provider.

        Returns the invoice in 발행완료 or 발행실패 (rejection detail in
        ``error_message``).

        Raises:
            InvariantViolationError: already 발행완료; no network call is made
            InvalidTransitionError: not in 작성중
            FiscalServiceUnavailableError: transport failure; the invoice
                stays 작성중 and is flagged for reconciliation
        """
        invoice = await self.get(invoice_id)
        async with _mgt_key_locks.hold(invoice.mgt_key):
            await self.session.refresh(invoice)
            return await self._submit_locked(invoice)

    async def reconcile(self, invoice_id: str) -> ReconcileResult:
        """
        Ask the provider and heal a 작성중 invoice it reports as issued.

        Any other definite answer (no document, or a document in a
        non-issued state) clears ``pending_reconciliation``.
        """
        invoice = await self.get(invoice_id)
        async with _mgt_key_locks.hold(invoice.mgt_key):
            await self.session.refresh(invoice)
            return await self._reconcile_locked(invoice)

    async def cancel(self, invoice_id: str) -> TaxInvoice:
        """
        Cancel locally. Allowed from 작성중 and 발행실패 only.

        An issued invoice is superseded by issuing a 수정세금계산서, never
        by cancelling the original.
        """
        invoice = await self.get(invoice_id)
        async with _mgt_key_locks.hold(invoice.mgt_key):
            await self.session.refresh(invoice)

            if invoice.status == InvoiceStatus.ISSUED:
                raise InvariantViolationError(
                    "발행완료된 세금계산서는 취소할 수 없습니다. 수정세금계산서를 발행하세요"
                )
            if invoice.status == InvoiceStatus.CANCELLED:
                raise InvalidTransitionError("이미 취소된 세금계산서입니다")
            if invoice.pending_reconciliation:
                raise InvalidTransitionError("발행 결과를 먼저 확인(reconcile)한 뒤 취소할 수 있습니다")

            await self._transition(
                invoice,
                expected=invoice.status,
                status=InvoiceStatus.CANCELLED,
                error_message=None,
                cancelled_at=self.clock(),
            )

        logger.info("invoice_cancelled", invoice_id=invoice.id, mgt_key=invoice.mgt_key)
        return invoice

    async def refresh_print_url(self, invoice_id: str) -> str:
        """Fetch and store the print URL of an issued invoice."""
        invoice = await self.get(invoice_id)
        if invoice.status != InvoiceStatus.ISSUED:
            raise InvalidTransitionError("발행완료된 세금계산서만 인쇄할 수 있습니다")

        url = await self.fiscal_client.get_print_url(invoice.mgt_key)
        await self._transition(invoice, expected=InvoiceStatus.ISSUED, print_url=url)
        return url

    # === Internals ===

    async def _submit_locked(self, invoice: TaxInvoice) -> TaxInvoice:
        # Checked before any network call
        if invoice.status == InvoiceStatus.ISSUED:
            logger.error("invoice_reissue_blocked", invoice_id=invoice.id, mgt_key=invoice.mgt_key)
            raise InvariantViolationError("이미 발행된 세금계산서는 다시 발행할 수 없습니다")
        if invoice.status != InvoiceStatus.DRAFTING:
            raise InvalidTransitionError(
                f"'{invoice.status.value}' 상태의 세금계산서는 발행할 수 없습니다"
            )

        if invoice.pending_reconciliation:
            result = await self._reconcile_locked(invoice)
            if invoice.status == InvoiceStatus.ISSUED:
                return invoice
            if result.remote is not None:
                # Document exists at the provider but is not issued; a new issue call would collide
                raise InvalidTransitionError(
                    f"외부 서비스 상태({result.remote.state})를 확인한 뒤 다시 시도하세요"
                )

        request = IssueRequest.from_invoice(invoice)
        await self._transition(
            invoice, expected=InvoiceStatus.DRAFTING, issue_attempted_at=self.clock()
        )

        try:
            result = await self.fiscal_client.issue(request)
        except FiscalServiceUnavailableError as e:
            await self._transition(
                invoice,
                expected=InvoiceStatus.DRAFTING,
                pending_reconciliation=True,
                last_transport_error=e.message,
            )
            logger.error(
                "invoice_issue_transport_failed",
                invoice_id=invoice.id,
                mgt_key=invoice.mgt_key,
            )
            raise

        if result.is_success:
            await self._mark_issued(invoice, result.nts_confirm_num)
            logger.info(
                "invoice_issued",
                invoice_id=invoice.id,
                mgt_key=invoice.mgt_key,
                nts_confirm_num=invoice.nts_confirm_num,
            )
            return invoice

        await self._transition(
            invoice,
            expected=InvoiceStatus.DRAFTING,
            status=InvoiceStatus.FAILED,
            error_message=result.message or f"발행 실패 (code {result.code})",
            pending_reconciliation=False,
            last_transport_error=None,
        )
        logger.warning(
            "invoice_issue_rejected",
            invoice_id=invoice.id,
            mgt_key=invoice.mgt_key,
            code=result.code,
            message=result.message,
        )
        return invoice

    async def _reconcile_locked(self, invoice: TaxInvoice) -> ReconcileResult:
        remote = await self.fiscal_client.get_status(invoice.mgt_key)

        if remote is None:
            # The provider has nothing under this key, so the earlier attempt never landed
            if invoice.pending_reconciliation:
                await self._transition(
                    invoice,
                    expected=invoice.status,
                    pending_reconciliation=False,
                    last_transport_error=None,
                )
            logger.info("invoice_reconcile_not_found", invoice_id=invoice.id, mgt_key=invoice.mgt_key)
            return ReconcileResult(invoice=invoice, remote=None)

        if remote.is_issued and invoice.status == InvoiceStatus.DRAFTING:
            if not remote.nts_confirm_num:
                logger.error("invoice_reconcile_missing_confirm_num", mgt_key=invoice.mgt_key)
                raise FiscalServiceUnavailableError()

            await self._mark_issued(invoice, remote.nts_confirm_num)
            logger.info(
                "invoice_reconciled_issued",
                invoice_id=invoice.id,
                mgt_key=invoice.mgt_key,
                nts_confirm_num=remote.nts_confirm_num,
            )
            return ReconcileResult(invoice=invoice, remote=remote, healed=True)

        if remote.is_issued and invoice.status != InvoiceStatus.ISSUED:
            logger.error(
                "invoice_reconcile_conflict",
                invoice_id=invoice.id,
                local_status=invoice.status.value,
                remote_state=remote.state,
            )
        elif not remote.is_issued and invoice.pending_reconciliation:
            # Document exists but is not issued (거부, 발행취소, ...): the outcome is known
            await self._transition(
                invoice,
                expected=invoice.status,
                pending_reconciliation=False,
                last_transport_error=None,
            )
            logger.warning(
                "invoice_reconcile_not_issued",
                invoice_id=invoice.id,
                mgt_key=invoice.mgt_key,
                remote_state=remote.state,
            )

        return ReconcileResult(invoice=invoice, remote=remote)

    async def _mark_issued(self, invoice: TaxInvoice, nts_confirm_num: Optional[str]) -> None:
        if not nts_confirm_num:
            raise InvariantViolationError("승인번호 없이 발행완료로 변경할 수 없습니다")

        await self._transition(
            invoice,
            expected=InvoiceStatus.DRAFTING,
            status=InvoiceStatus.ISSUED,
            nts_confirm_num=nts_confirm_num,
            error_message=None,
            issued_at=self.clock(),
            pending_reconciliation=False,
            last_transport_error=None,
        )

        # Best effort: the invoice is issued whether or not the URL arrives
        try:
            url = await self.fiscal_client.get_print_url(invoice.mgt_key)
        except (FiscalServiceUnavailableError, FiscalRejectedError) as e:
            logger.warning("invoice_print_url_unavailable", mgt_key=invoice.mgt_key, error=e.message)
            return
        await self._transition(invoice, expected=InvoiceStatus.ISSUED, print_url=url)

    async def _transition(self, invoice: TaxInvoice, expected: InvoiceStatus, **values: Any) -> None:
        """Conditional single-record update; commits on success."""
        stmt = (
            update(TaxInvoice)
            .where(TaxInvoice.id == invoice.id, TaxInvoice.status == expected)
            .values(updated_at=self.clock(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)

        if result.rowcount != 1:
            await self.session.rollback()
            logger.warning(
                "invoice_concurrent_modification",
                invoice_id=invoice.id,
                expected=expected.value,
            )
            raise ConcurrentModificationError()

        await self.session.commit()
        await self.session.refresh(invoice)
