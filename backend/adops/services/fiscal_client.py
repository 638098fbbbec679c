"""
Popbill e-tax-invoice client (전자세금계산서 발행/조회).

Stateless wrapper around the Popbill SDK: issue, status query, print URL
and business registration lookup. Includes mock implementation for
development without actual API credentials.
"""

import asyncio
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import lru_cache
from http.client import HTTPException
from typing import Any, Callable, Optional, TypeVar

import structlog
from popbill import (
    ClosedownService,
    PopbillException,
    Taxinvoice,
    TaxinvoiceDetail,
    TaxinvoiceService,
)

from adops.config import get_settings
from adops.exceptions import FiscalRejectedError, FiscalServiceUnavailableError
from adops.models import TaxInvoice
from adops.utils.masking import mask_business_number

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Invoices are always issued by us (공급자)
MGT_KEY_TYPE = "SELL"

# SDK code for "could not talk to Popbill"; everything else negative is a business rejection
TRANSPORT_ERROR_CODES = frozenset({-99999999})

# Popbill stateCode hundreds -> label
STATE_LABELS = {
    100: "임시저장",
    200: "승인대기",
    300: "발행완료",
    400: "거부",
    500: "취소",
    600: "발행취소",
}

# checkCorpNum state -> label
BUSINESS_STATE_LABELS = {
    "0": "미등록",
    "1": "사업중",
    "2": "폐업",
    "3": "휴업",
}


@dataclass
class IssueRequest:
    """Everything the provider needs to issue one invoice."""

    mgt_key: str
    tax_type: str
    purpose_type: str
    write_date: date
    supply_price_total: int
    tax_total: int
    total_amount: int
    issuer: dict[str, Any]
    recipient: dict[str, Any]
    items: list[dict[str, Any]]
    remark: Optional[str] = None
    modify_code: Optional[int] = None
    original_nts_confirm_num: Optional[str] = None

    @classmethod
    def from_invoice(cls, invoice: TaxInvoice) -> "IssueRequest":
        return cls(
            mgt_key=invoice.mgt_key,
            tax_type=invoice.tax_type.value,
            purpose_type=invoice.purpose_type.value,
            write_date=invoice.write_date,
            supply_price_total=invoice.supply_price_total,
            tax_total=invoice.tax_total,
            total_amount=invoice.total_amount,
            issuer=invoice.issuer_info,
            recipient=invoice.recipient_info,
            items=invoice.items,
            remark=invoice.remark,
            modify_code=invoice.modify_code,
            original_nts_confirm_num=invoice.original_nts_confirm_num,
        )


@dataclass
class IssueResult:
    """Provider answer to an issue call. Negative ``code`` is a business rejection."""

    code: int
    message: str
    nts_confirm_num: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.code >= 0


@dataclass
class FiscalStatus:
    """Provider-side state of one invoice."""

    mgt_key: str
    state_code: int
    state_datetime: Optional[str] = None
    nts_confirm_num: Optional[str] = None
    state: str = field(init=False)

    def __post_init__(self) -> None:
        self.state = STATE_LABELS.get(self.state_code // 100 * 100, str(self.state_code))

    @property
    def is_issued(self) -> bool:
        return 300 <= self.state_code < 400


@dataclass
class BusinessStatus:
    business_number: str
    state: Optional[str]
    state_label: str
    company_name: Optional[str] = None
    checked_at: Optional[str] = None


class MalformedResponseError(ValueError):
    """The provider answered, but not with the fields we need."""


def _attr(obj: Any, *names: str) -> Any:
    """First present attribute among ``names`` (SDK response objects are plain attribute bags)."""
    for name in names:
        value = getattr(obj, name, None)
        if value is not None:
            return value
    return None


def _required_int(obj: Any, name: str) -> int:
    value = getattr(obj, name, None)
    if value is None:
        raise MalformedResponseError(f"response has no {name}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"{name} is not a number: {value!r}") from e


def _digits(value: Optional[str]) -> str:
    return (value or "").replace("-", "").strip()


def _yyyymmdd(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y%m%d")
    return str(value).replace("-", "")


def build_taxinvoice(request: IssueRequest) -> Taxinvoice:
    """Map an IssueRequest onto the Popbill Taxinvoice document."""
    issuer = request.issuer
    recipient = request.recipient
    write_date = _yyyymmdd(request.write_date)

    details = [
        TaxinvoiceDetail(
            serialNum=index,
            purchaseDT=_yyyymmdd(item.get("purchase_date") or write_date),
            itemName=item.get("item_name", ""),
            spec=item.get("spec", ""),
            qty=str(item.get("qty", 1)),
            unitCost=str(item.get("unit_price", 0)),
            supplyCost=str(item["supply_price"]),
            tax=str(item["tax"]),
            remark=item.get("remark", ""),
        )
        for index, item in enumerate(request.items, 1)
    ]

    return Taxinvoice(
        writeDate=write_date,
        chargeDirection="정과금",
        issueType="정발행",
        purposeType=request.purpose_type,
        taxType=request.tax_type,
        # 공급자
        invoicerCorpNum=_digits(issuer["corp_num"]),
        invoicerTaxRegID=issuer.get("tax_reg_id") or None,
        invoicerMgtKey=request.mgt_key,
        invoicerCorpName=issuer["corp_name"],
        invoicerCEOName=issuer.get("ceo_name", ""),
        invoicerAddr=issuer.get("addr", ""),
        invoicerBizType=issuer["biz_type"],
        invoicerBizClass=issuer["biz_class"],
        invoicerContactName=issuer.get("contact_name", ""),
        invoicerTEL=issuer["tel_num"],
        invoicerEmail=issuer.get("email") or "",
        # 공급받는자
        invoiceeType="사업자",
        invoiceeCorpNum=_digits(recipient["corp_num"]),
        invoiceeTaxRegID=recipient.get("tax_reg_id") or None,
        invoiceeCorpName=recipient["corp_name"],
        invoiceeCEOName=recipient.get("ceo_name", ""),
        invoiceeAddr=recipient.get("addr", ""),
        invoiceeBizType=recipient["biz_type"],
        invoiceeBizClass=recipient["biz_class"],
        invoiceeContactName1=recipient.get("contact_name", ""),
        invoiceeTEL1=recipient["tel_num"],
        invoiceeEmail1=recipient.get("email") or "",
        # 합계
        supplyCostTotal=str(request.supply_price_total),
        taxTotal=str(request.tax_total),
        totalAmount=str(request.total_amount),
        # 수정세금계산서
        modifyCode=request.modify_code,
        orgNTSConfirmNum=request.original_nts_confirm_num,
        remark1=request.remark or "",
        detailList=details,
    )


class FiscalClient:
    """
    Popbill e-tax-invoice service.

    Every call is one synchronous SDK round trip run in the default
    executor under ``timeout`` seconds. Transport failures, timeouts and
    malformed responses raise FiscalServiceUnavailableError; business
    rejections carry the provider message verbatim.

    When API credentials are not configured, uses a mock implementation
    that keeps issued invoices in memory.
    """

    def __init__(
        self,
        link_id: Optional[str] = None,
        secret_key: Optional[str] = None,
        corp_num: Optional[str] = None,
        user_id: Optional[str] = None,
        is_test: Optional[bool] = None,
        timeout: Optional[float] = None,
        taxinvoice_service: Any = None,
        closedown_service: Any = None,
    ):
        settings = get_settings()
        self.link_id = link_id or settings.popbill_link_id
        self.secret_key = secret_key or settings.popbill_secret_key
        self.corp_num = _digits(corp_num or settings.popbill_corp_num)
        self.user_id = user_id or settings.popbill_user_id or None
        self.is_test = settings.popbill_is_test if is_test is None else is_test
        self.timeout = timeout or settings.fiscal_timeout_seconds

        self.taxinvoice_service = taxinvoice_service
        self.closedown_service = closedown_service
        self.is_mock = taxinvoice_service is None and not (
            self.link_id and self.secret_key and self.corp_num
        )

        if self.is_mock:
            self._mock_issued: dict[str, FiscalStatus] = {}
            logger.warning("fiscal_client_mock_mode")
            return

        if self.taxinvoice_service is None:
            self.taxinvoice_service = TaxinvoiceService(self.link_id, self.secret_key)
            self.taxinvoice_service.IsTest = self.is_test
        if self.closedown_service is None:
            self.closedown_service = ClosedownService(self.link_id, self.secret_key)
            self.closedown_service.IsTest = self.is_test

    async def issue(self, request: IssueRequest) -> IssueResult:
        """
        Register and issue an invoice in one call (즉시발행).

        Not idempotent at the provider: callers must never resubmit a
        ``mgt_key`` that may already be issued.

        Returns:
            IssueResult; a rejection is returned, not raised

        Raises:
            FiscalServiceUnavailableError: outcome at the provider unknown
        """
        if self.is_mock:
            return self._mock_issue(request)

        def call() -> IssueResult:
            response = self.taxinvoice_service.registIssue(
                self.corp_num,
                build_taxinvoice(request),
                UserID=self.user_id,
            )
            return IssueResult(
                code=_required_int(response, "code"),
                message=str(_attr(response, "message") or ""),
                nts_confirm_num=_attr(response, "ntsConfirmNum", "ntsconfirmNum"),
            )

        try:
            result = await self._call("issue", request.mgt_key, call)
        except FiscalRejectedError as e:
            logger.warning("fiscal_issue_rejected", mgt_key=request.mgt_key, code=e.code, message=e.message)
            return IssueResult(code=e.code if e.code is not None else -1, message=e.message)

        if result.is_success and not result.nts_confirm_num:
            logger.error("fiscal_issue_missing_confirm_num", mgt_key=request.mgt_key)
            raise FiscalServiceUnavailableError()

        logger.info("fiscal_issued", mgt_key=request.mgt_key, code=result.code)
        return result

    async def get_status(self, mgt_key: str) -> Optional[FiscalStatus]:
        """
        Query the provider-side state.

        Returns:
            FiscalStatus, or None when the provider has no invoice under ``mgt_key``
        """
        if self.is_mock:
            return self._mock_issued.get(mgt_key)

        def call() -> Optional[FiscalStatus]:
            # checkMgtKeyInUse and getInfo take no UserID
            in_use = self.taxinvoice_service.checkMgtKeyInUse(self.corp_num, MGT_KEY_TYPE, mgt_key)
            if not in_use:
                return None

            info = self.taxinvoice_service.getInfo(self.corp_num, MGT_KEY_TYPE, mgt_key)
            return FiscalStatus(
                mgt_key=mgt_key,
                state_code=_required_int(info, "stateCode"),
                state_datetime=_attr(info, "stateDT"),
                nts_confirm_num=_attr(info, "ntsconfirmNum", "ntsConfirmNum") or None,
            )

        return await self._call("get_status", mgt_key, call)

    async def get_print_url(self, mgt_key: str) -> str:
        """Print popup URL; meaningful only once the invoice is issued."""
        if self.is_mock:
            if mgt_key not in self._mock_issued:
                raise FiscalRejectedError("해당 관리번호의 세금계산서가 존재하지 않습니다", code=-1)
            return f"https://test.popbill.com/mock/print/{mgt_key}"

        def call() -> str:
            url = self.taxinvoice_service.getPrintURL(
                self.corp_num, MGT_KEY_TYPE, mgt_key, UserID=self.user_id
            )
            if not isinstance(url, str) or not url:
                raise MalformedResponseError("empty print URL")
            return url

        return await self._call("get_print_url", mgt_key, call)

    async def check_business_status(self, business_number: str) -> BusinessStatus:
        """Look up a business registration number (휴폐업조회)."""
        number = _digits(business_number)

        if self.is_mock:
            return BusinessStatus(
                business_number=number,
                state="1",
                state_label=BUSINESS_STATE_LABELS["1"],
                checked_at=datetime.now().strftime("%Y%m%d"),
            )

        def call() -> BusinessStatus:
            result = self.closedown_service.checkCorpNum(self.corp_num, number)
            state = _attr(result, "state")
            state = str(state) if state is not None else None
            return BusinessStatus(
                business_number=number,
                state=state,
                state_label=BUSINESS_STATE_LABELS.get(state, "확인불가"),
                company_name=_attr(result, "corpName", "companyName"),
                checked_at=_attr(result, "checkDate"),
            )

        return await self._call("check_business_status", mask_business_number(number), call)

    async def _call(self, operation: str, key: str, fn: Callable[[], T]) -> T:
        """Run a sync SDK call in the thread pool, classifying failures."""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, fn), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            logger.error("fiscal_call_timeout", operation=operation, key=key, timeout=self.timeout)
            raise FiscalServiceUnavailableError() from e
        except PopbillException as e:
            code = int(e.code)
            if code in TRANSPORT_ERROR_CODES:
                logger.error("fiscal_call_transport_error", operation=operation, key=key, message=e.message)
                raise FiscalServiceUnavailableError() from e
            raise FiscalRejectedError(str(e.message), code=code) from e
        except (OSError, HTTPException, ValueError) as e:
            # Connection failures, broken HTTP, undecodable JSON or MalformedResponseError.
            # Anything else is a bug on our side and propagates.
            logger.error("fiscal_call_failed", operation=operation, key=key, error=repr(e))
            raise FiscalServiceUnavailableError() from e

    def _mock_issue(self, request: IssueRequest) -> IssueResult:
        """Mock issue - records the invoice in memory with a fake 승인번호."""
        if request.mgt_key in self._mock_issued:
            return IssueResult(code=-1, message="이미 사용중인 관리번호입니다.")

        now = datetime.now()
        confirm_num = f"{now:%Y%m%d}-MOCK-{secrets.token_hex(4)}"
        self._mock_issued[request.mgt_key] = FiscalStatus(
            mgt_key=request.mgt_key,
            state_code=300,
            state_datetime=now.strftime("%Y%m%d%H%M%S"),
            nts_confirm_num=confirm_num,
        )
        logger.info("fiscal_mock_issued", mgt_key=request.mgt_key)
        return IssueResult(code=1, message="발행 완료 (mock)", nts_confirm_num=confirm_num)


@lru_cache
def get_fiscal_client() -> FiscalClient:
    """Shared client; mock state must outlive a single request."""
    return FiscalClient()
