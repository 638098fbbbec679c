"""
Pytest configuration and fixtures.
"""

import re
from datetime import datetime
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from adops.database import Base, get_session
from adops.exceptions import FiscalServiceUnavailableError
from adops.main import app
from adops.models import Advertiser, User, UserRole, UserStatus
from adops.services.email_service import get_email_service
from adops.services.fiscal_client import (
    BusinessStatus,
    FiscalStatus,
    IssueRequest,
    IssueResult,
    get_fiscal_client,
)
from adops.services.invoice_lifecycle import InvoiceLifecycleManager
from adops.services.token_store import TokenStore, get_token_store


# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TOKEN_PATTERN = re.compile(r"token=([0-9a-f]{64})")


# === Fakes ===


class FakeMailer:
    """Records sent mails; ``fail_with`` makes every send raise."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail_with: Optional[Exception] = None

    async def send(self, to_email: str, subject: str, html_body: str) -> dict:
        self.sent.append({"to": to_email, "subject": subject, "html": html_body})
        if self.fail_with is not None:
            raise self.fail_with
        return {"status": "sent", "to": to_email}

    def last_token(self) -> str:
        match = TOKEN_PATTERN.search(self.sent[-1]["html"])
        assert match, "no token in mail body"
        return match.group(1)


class FakeFiscalClient:
    """
    In-memory provider with switchable issue outcomes.

    ``issue_outcome``:
        "success"        issued, confirmation number returned
        "reject"         business rejection (negative code)
        "transport"      connection failure, nothing issued remotely
        "lost_response"  issued remotely, but the response never arrives
    """

    REJECT_MESSAGE = "공급받는자 사업자등록번호가 유효하지 않습니다."

    def __init__(self) -> None:
        self.issue_outcome = "success"
        self.print_url_fails = False
        self.remote: dict[str, FiscalStatus] = {}
        self.issue_calls: list[str] = []
        self.status_calls: list[str] = []
        self.events: list[str] = []
        self.on_issue = None

    def _issued_status(self, mgt_key: str) -> FiscalStatus:
        confirm_num = f"20260205-41000000-{len(self.issue_calls):08d}"
        return FiscalStatus(
            mgt_key=mgt_key,
            state_code=304,
            state_datetime="20260205120000",
            nts_confirm_num=confirm_num,
        )

    async def issue(self, request: IssueRequest) -> IssueResult:
        self.issue_calls.append(request.mgt_key)
        self.events.append("issue_start")
        if self.on_issue is not None:
            await self.on_issue(request)
        self.events.append("issue_end")

        if self.issue_outcome == "transport":
            raise FiscalServiceUnavailableError()
        if self.issue_outcome == "lost_response":
            self.remote[request.mgt_key] = self._issued_status(request.mgt_key)
            raise FiscalServiceUnavailableError()
        if self.issue_outcome == "reject":
            return IssueResult(code=-11000001, message=self.REJECT_MESSAGE)

        status = self._issued_status(request.mgt_key)
        self.remote[request.mgt_key] = status
        return IssueResult(code=1, message="발행 완료", nts_confirm_num=status.nts_confirm_num)

    async def get_status(self, mgt_key: str) -> Optional[FiscalStatus]:
        self.status_calls.append(mgt_key)
        self.events.append("status")
        return self.remote.get(mgt_key)

    async def get_print_url(self, mgt_key: str) -> str:
        if self.print_url_fails:
            raise FiscalServiceUnavailableError()
        return f"https://print.test/{mgt_key}"

    async def check_business_status(self, business_number: str) -> BusinessStatus:
        return BusinessStatus(
            business_number=business_number.replace("-", ""),
            state="1",
            state_label="사업중",
            company_name="테스트광고주",
            checked_at="20260205",
        )


# === Database ===


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


# === Services ===


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def fiscal_client() -> FakeFiscalClient:
    return FakeFiscalClient()


@pytest.fixture
def token_store() -> TokenStore:
    return TokenStore()


@pytest.fixture
def manager(test_session: AsyncSession, fiscal_client: FakeFiscalClient) -> InvoiceLifecycleManager:
    return InvoiceLifecycleManager(session=test_session, fiscal_client=fiscal_client)


# === HTTP ===


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    mailer: FakeMailer,
    fiscal_client: FakeFiscalClient,
    token_store: TokenStore,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client."""

    async def override_get_session():
        yield test_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_email_service] = lambda: mailer
    app.dependency_overrides[get_fiscal_client] = lambda: fiscal_client
    app.dependency_overrides[get_token_store] = lambda: token_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def login(client: AsyncClient, mailer: FakeMailer):
    """Log ``email`` in through the real request-link / verify flow."""

    async def _login(email: str):
        response = await client.post("/api/v1/auth/request-link", json={"email": email})
        assert response.status_code == 200, response.text

        response = await client.get("/api/v1/auth/verify", params={"token": mailer.last_token()})
        assert response.status_code == 200, response.text
        return response

    return _login


# === Records ===


async def _add_user(session: AsyncSession, user_id: str, email: str, role: UserRole) -> User:
    user = User(
        id=user_id,
        email=email,
        name=email.split("@")[0],
        role=role,
        status=UserStatus.ACTIVE,
        created_at=datetime(2026, 2, 1),
    )
    session.add(user)
    await session.commit()
    return user


@pytest_asyncio.fixture
async def editor_user(test_session: AsyncSession) -> User:
    return await _add_user(test_session, "USR-editor", "editor@example.com", UserRole.USER)


@pytest_asyncio.fixture
async def readonly_user(test_session: AsyncSession) -> User:
    return await _add_user(test_session, "USR-viewer", "viewer@example.com", UserRole.READ_ONLY)


@pytest_asyncio.fixture
async def admin_user(test_session: AsyncSession) -> User:
    return await _add_user(test_session, "USR-admin", "admin@example.com", UserRole.ADMIN)


@pytest_asyncio.fixture
async def sample_advertiser(test_session: AsyncSession) -> Advertiser:
    advertiser = Advertiser(
        id="ADV-001",
        company_name="테스트광고주",
        business_number="111-11-11119",
        ceo_name="홍길동",
        email="billing@example.com",
        phone="010-0000-0000",
        status="집행중",
    )
    test_session.add(advertiser)
    await test_session.commit()
    return advertiser


@pytest.fixture
def draft_payload(sample_advertiser: Advertiser) -> dict:
    """A valid 과세 세금계산서 draft: 1,000,000 + 100,000 VAT."""
    return {
        "advertiser_id": sample_advertiser.id,
        "invoice_type": "세금계산서",
        "tax_type": "과세",
        "purpose_type": "영수",
        "write_date": "2026-02-05",
        "items": [
            {"item_name": "메인 배너 광고 (2월)", "qty": 1, "unit_price": 1000000},
        ],
        "issuer_info": {
            "corp_num": "123-45-67890",
            "corp_name": "벤처스퀘어",
            "ceo_name": "대표자",
            "addr": "서울특별시",
            "biz_type": "서비스",
            "biz_class": "광고대행",
            "tel_num": "02-000-0000",
            "email": "ad@venturesquare.net",
        },
        "recipient_info": {
            "corp_num": "1111111119",
            "corp_name": "테스트광고주",
            "ceo_name": "홍길동",
            "biz_type": "도소매",
            "biz_class": "전자상거래",
            "tel_num": "010-0000-0000",
            "email": "billing@example.com",
        },
    }
