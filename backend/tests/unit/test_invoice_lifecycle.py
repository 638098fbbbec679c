"""
Unit tests for InvoiceLifecycleManager.
"""

import asyncio

import pytest
from sqlalchemy import update

from adops.exceptions import (
    ConcurrentModificationError,
    FiscalServiceUnavailableError,
    InvalidTransitionError,
    InvariantViolationError,
    NotFoundError,
)
from adops.models import InvoiceStatus, TaxInvoice, TaxType
from adops.schemas import InvoiceItemIn, TaxInvoiceDraft
from adops.services.fiscal_client import FiscalStatus
from adops.services.invoice_lifecycle import compute_item, generate_mgt_key


def assert_consistent(invoice: TaxInvoice) -> None:
    """Confirmation number iff issued, error message iff failed."""
    if invoice.status == InvoiceStatus.ISSUED:
        assert invoice.nts_confirm_num
    else:
        assert invoice.nts_confirm_num is None
    if invoice.status == InvoiceStatus.FAILED:
        assert invoice.error_message
    else:
        assert invoice.error_message is None


@pytest.fixture
def draft(draft_payload) -> TaxInvoiceDraft:
    return TaxInvoiceDraft(**draft_payload)


class TestHelpers:
    def test_mgt_key_fits_provider_limit(self):
        key = generate_mgt_key()

        assert key.startswith("INV")
        assert len(key) == 23

    def test_mgt_keys_are_unique(self):
        assert len({generate_mgt_key() for _ in range(200)}) == 200

    def test_vat_is_ten_percent_rounded_half_up(self):
        item = compute_item(InvoiceItemIn(item_name="광고", qty=3, unit_price=335), TaxType.TAXABLE)

        assert item["supply_price"] == 1005
        assert item["tax"] == 101  # 100.5 -> 101

    def test_zero_rated_has_no_tax(self):
        item = compute_item(InvoiceItemIn(item_name="광고", unit_price=50000), TaxType.ZERO_RATED)

        assert item["tax"] == 0

    def test_explicit_amounts_are_kept(self):
        item = compute_item(
            InvoiceItemIn(item_name="광고", qty=2, unit_price=100, supply_price=150, tax=0),
            TaxType.TAXABLE,
        )

        assert item["supply_price"] == 150
        assert item["tax"] == 0


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_starts_in_drafting(self, manager, draft):
        invoice = await manager.create(draft)

        assert invoice.status == InvoiceStatus.DRAFTING
        assert invoice.mgt_key.startswith("INV")
        assert invoice.supply_price_total == 1000000
        assert invoice.tax_total == 100000
        assert invoice.total_amount == 1100000
        assert invoice.pending_reconciliation is False
        assert_consistent(invoice)

    @pytest.mark.asyncio
    async def test_create_unknown_advertiser(self, manager, draft_payload):
        draft = TaxInvoiceDraft(**dict(draft_payload, advertiser_id="ADV-missing"))

        with pytest.raises(NotFoundError):
            await manager.create(draft)

    @pytest.mark.asyncio
    async def test_each_invoice_gets_its_own_mgt_key(self, manager, draft):
        first = await manager.create(draft)
        second = await manager.create(draft)

        assert first.mgt_key != second.mgt_key


class TestSubmit:
    @pytest.mark.asyncio
    async def test_success_issues_invoice(self, manager, draft, fiscal_client):
        invoice = await manager.create(draft)

        invoice = await manager.submit(invoice.id)

        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.nts_confirm_num
        assert invoice.issued_at is not None
        assert invoice.print_url == f"https://print.test/{invoice.mgt_key}"
        assert fiscal_client.issue_calls == [invoice.mgt_key]
        assert_consistent(invoice)

    @pytest.mark.asyncio
    async def test_print_url_failure_does_not_undo_issue(self, manager, draft, fiscal_client):
        fiscal_client.print_url_fails = True
        invoice = await manager.create(draft)

        invoice = await manager.submit(invoice.id)

        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.print_url is None

    @pytest.mark.asyncio
    async def test_rejection_moves_to_failed(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "reject"
        invoice = await manager.create(draft)

        invoice = await manager.submit(invoice.id)

        assert invoice.status == InvoiceStatus.FAILED
        assert invoice.error_message == fiscal_client.REJECT_MESSAGE
        assert_consistent(invoice)

    @pytest.mark.asyncio
    async def test_resubmit_issued_is_invariant_violation_without_network(
        self, manager, draft, fiscal_client
    ):
        invoice = await manager.create(draft)
        await manager.submit(invoice.id)
        calls_before = (len(fiscal_client.issue_calls), len(fiscal_client.status_calls))

        with pytest.raises(InvariantViolationError):
            await manager.submit(invoice.id)

        assert (len(fiscal_client.issue_calls), len(fiscal_client.status_calls)) == calls_before

    @pytest.mark.asyncio
    async def test_submit_failed_invoice_is_invalid_transition(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "reject"
        invoice = await manager.create(draft)
        await manager.submit(invoice.id)

        with pytest.raises(InvalidTransitionError):
            await manager.submit(invoice.id)

        assert len(fiscal_client.issue_calls) == 1

    @pytest.mark.asyncio
    async def test_submit_unknown_invoice(self, manager):
        with pytest.raises(NotFoundError):
            await manager.submit("TI-missing")

    @pytest.mark.asyncio
    async def test_transport_failure_stays_drafting(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "transport"
        invoice = await manager.create(draft)

        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        invoice = await manager.get(invoice.id)
        assert invoice.status == InvoiceStatus.DRAFTING
        assert invoice.pending_reconciliation is True
        assert invoice.last_transport_error
        assert invoice.issue_attempted_at is not None
        assert_consistent(invoice)

    @pytest.mark.asyncio
    async def test_retry_after_lost_response_heals_without_second_issue(
        self, manager, draft, fiscal_client
    ):
        fiscal_client.issue_outcome = "lost_response"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        fiscal_client.issue_outcome = "success"
        invoice = await manager.submit(invoice.id)

        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.nts_confirm_num == fiscal_client.remote[invoice.mgt_key].nts_confirm_num
        assert len(fiscal_client.issue_calls) == 1

    @pytest.mark.asyncio
    async def test_retry_after_transport_failure_issues_once_absent_remotely(
        self, manager, draft, fiscal_client
    ):
        fiscal_client.issue_outcome = "transport"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        fiscal_client.issue_outcome = "success"
        invoice = await manager.submit(invoice.id)

        assert invoice.status == InvoiceStatus.ISSUED
        assert invoice.pending_reconciliation is False
        assert invoice.last_transport_error is None
        assert len(fiscal_client.issue_calls) == 2
        assert fiscal_client.status_calls == [invoice.mgt_key]

    @pytest.mark.asyncio
    async def test_lost_race_raises_concurrent_modification(
        self, manager, draft, fiscal_client, test_session
    ):
        invoice = await manager.create(draft)

        async def cancel_behind_our_back(request):
            await test_session.execute(
                update(TaxInvoice)
                .where(TaxInvoice.id == invoice.id)
                .values(status=InvoiceStatus.CANCELLED)
            )
            await test_session.commit()

        fiscal_client.on_issue = cancel_behind_our_back

        with pytest.raises(ConcurrentModificationError):
            await manager.submit(invoice.id)

        await test_session.refresh(invoice)
        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.nts_confirm_num is None


class TestReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_heals_split_brain(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "lost_response"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)
        assert (await manager.get(invoice.id)).status == InvoiceStatus.DRAFTING

        result = await manager.reconcile(invoice.id)

        assert result.healed
        assert result.invoice.status == InvoiceStatus.ISSUED
        assert result.invoice.nts_confirm_num
        assert result.invoice.pending_reconciliation is False
        assert result.invoice.print_url
        assert_consistent(result.invoice)

    @pytest.mark.asyncio
    async def test_reconcile_not_found_leaves_status(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "transport"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        result = await manager.reconcile(invoice.id)

        assert result.remote is None
        assert not result.healed
        assert result.invoice.status == InvoiceStatus.DRAFTING
        assert result.invoice.pending_reconciliation is False

    @pytest.mark.asyncio
    async def test_reconcile_remote_not_issued_releases_invoice(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "transport"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)
        fiscal_client.remote[invoice.mgt_key] = FiscalStatus(mgt_key=invoice.mgt_key, state_code=600)

        result = await manager.reconcile(invoice.id)

        assert result.remote.state == "발행취소"
        assert not result.healed
        assert result.invoice.status == InvoiceStatus.DRAFTING
        assert result.invoice.pending_reconciliation is False
        assert result.invoice.last_transport_error is None

        invoice = await manager.cancel(invoice.id)

        assert invoice.status == InvoiceStatus.CANCELLED
        assert fiscal_client.issue_calls == [invoice.mgt_key]

    @pytest.mark.asyncio
    async def test_reconcile_issued_invoice_is_noop(self, manager, draft, fiscal_client):
        invoice = await manager.create(draft)
        invoice = await manager.submit(invoice.id)
        confirm_num = invoice.nts_confirm_num

        result = await manager.reconcile(invoice.id)

        assert not result.healed
        assert result.invoice.status == InvoiceStatus.ISSUED
        assert result.invoice.nts_confirm_num == confirm_num

    @pytest.mark.asyncio
    async def test_reconcile_transport_failure_propagates(self, manager, draft, fiscal_client):
        invoice = await manager.create(draft)

        async def unavailable(mgt_key):
            raise FiscalServiceUnavailableError()

        fiscal_client.get_status = unavailable

        with pytest.raises(FiscalServiceUnavailableError):
            await manager.reconcile(invoice.id)

    @pytest.mark.asyncio
    async def test_reconcile_waits_for_in_flight_submit(self, manager, draft, fiscal_client):
        invoice = await manager.create(draft)
        release = asyncio.Event()

        async def slow_issue(request):
            await release.wait()

        fiscal_client.on_issue = slow_issue

        submit_task = asyncio.create_task(manager.submit(invoice.id))
        while "issue_start" not in fiscal_client.events:
            await asyncio.sleep(0)
        reconcile_task = asyncio.create_task(manager.reconcile(invoice.id))
        await asyncio.sleep(0.01)

        # Still blocked behind the submit holding the mgt_key lock
        assert fiscal_client.status_calls == []

        release.set()
        await submit_task
        result = await reconcile_task

        assert fiscal_client.events == ["issue_start", "issue_end", "status"]
        assert result.invoice.status == InvoiceStatus.ISSUED
        assert not result.healed


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_drafting(self, manager, draft):
        invoice = await manager.create(draft)

        invoice = await manager.cancel(invoice.id)

        assert invoice.status == InvoiceStatus.CANCELLED
        assert invoice.cancelled_at is not None

    @pytest.mark.asyncio
    async def test_cancel_failed_clears_error(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "reject"
        invoice = await manager.create(draft)
        await manager.submit(invoice.id)

        invoice = await manager.cancel(invoice.id)

        assert invoice.status == InvoiceStatus.CANCELLED
        assert_consistent(invoice)

    @pytest.mark.asyncio
    async def test_cancel_issued_is_invariant_violation(self, manager, draft):
        invoice = await manager.create(draft)
        await manager.submit(invoice.id)

        with pytest.raises(InvariantViolationError):
            await manager.cancel(invoice.id)

        assert (await manager.get(invoice.id)).status == InvoiceStatus.ISSUED

    @pytest.mark.asyncio
    async def test_cancel_twice(self, manager, draft):
        invoice = await manager.create(draft)
        await manager.cancel(invoice.id)

        with pytest.raises(InvalidTransitionError):
            await manager.cancel(invoice.id)

    @pytest.mark.asyncio
    async def test_cancel_pending_reconciliation_is_refused(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "transport"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        with pytest.raises(InvalidTransitionError):
            await manager.cancel(invoice.id)

    @pytest.mark.asyncio
    async def test_cancelled_invoice_cannot_be_submitted(self, manager, draft, fiscal_client):
        invoice = await manager.create(draft)
        await manager.cancel(invoice.id)

        with pytest.raises(InvalidTransitionError):
            await manager.submit(invoice.id)

        assert fiscal_client.issue_calls == []


class TestQueries:
    @pytest.mark.asyncio
    async def test_check_status_is_read_only(self, manager, draft, fiscal_client):
        fiscal_client.issue_outcome = "lost_response"
        invoice = await manager.create(draft)
        with pytest.raises(FiscalServiceUnavailableError):
            await manager.submit(invoice.id)

        remote = await manager.check_status(invoice.id)

        assert remote.is_issued
        assert (await manager.get(invoice.id)).status == InvoiceStatus.DRAFTING

    @pytest.mark.asyncio
    async def test_refresh_print_url_requires_issued(self, manager, draft):
        invoice = await manager.create(draft)

        with pytest.raises(InvalidTransitionError):
            await manager.refresh_print_url(invoice.id)

    @pytest.mark.asyncio
    async def test_list_filters(self, manager, draft, fiscal_client):
        issued = await manager.create(draft)
        await manager.submit(issued.id)
        await manager.create(draft)

        drafting = await manager.list_invoices(status=InvoiceStatus.DRAFTING)
        by_advertiser = await manager.list_invoices(advertiser_id=draft.advertiser_id)
        other = await manager.list_invoices(advertiser_id="ADV-other")

        assert len(drafting) == 1
        assert len(by_advertiser) == 2
        assert other == []
