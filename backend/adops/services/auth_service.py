"""
Magic-link authentication service.

Issues single-use, time-boxed login links and redeems them. Session state
lives in the HTTP layer; this service only proves that the caller controls
an email address.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Callable, NoReturn, Optional

import structlog

from adops.config import get_settings
from adops.exceptions import InvalidTokenError, MailDeliveryError
from adops.services.email_service import EmailService
from adops.services.token_store import AuthToken, TokenStore
from adops.utils.masking import mask_email

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 32  # 256 bits

LOGIN_MAIL_SUBJECT = "벤처스퀘어 광고 관리 시스템 로그인"


def generate_token() -> str:
    """Generate a URL-safe raw token with 256 bits of entropy."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    """One-way hash used as the storage key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def build_login_mail(magic_link: str, ttl_minutes: int) -> str:
    """Render the HTML body of the login mail."""
    return f"""
<div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h2 style="color: #333; margin-bottom: 20px;">벤처스퀘어 광고 관리 시스템</h2>
  <p style="color: #666; margin-bottom: 20px;">안녕하세요,</p>
  <p style="color: #666; margin-bottom: 20px;">아래 버튼을 클릭하여 로그인하세요. 이 링크는 {ttl_minutes}분 동안 유효합니다.</p>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{magic_link}" style="background-color: #4F46E5; color: white; padding: 12px 30px; text-decoration: none; border-radius: 6px; display: inline-block;">로그인하기</a>
  </div>
  <p style="color: #999; font-size: 14px; margin-top: 30px;">이 이메일을 요청하지 않으셨다면 무시하셔도 됩니다.</p>
  <p style="color: #999; font-size: 12px; margin-top: 20px; padding-top: 20px; border-top: 1px solid #eee;">
    링크가 작동하지 않으면 아래 URL을 복사하여 브라우저에 붙여넣으세요:<br/>
    <span style="color: #666;">{magic_link}</span>
  </p>
</div>
"""


class AuthService:
    """
    Magic-link token lifecycle.

    A token goes ``issued -> consumed`` (successful verify) or
    ``issued -> expired`` (sweep, or a verify after ``expires_at``).
    Neither end state can be left.
    """

    def __init__(
        self,
        store: TokenStore,
        mailer: EmailService,
        ttl_minutes: Optional[int] = None,
        base_url: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        settings = get_settings()
        self.store = store
        self.mailer = mailer
        self.ttl = timedelta(minutes=ttl_minutes or settings.auth_token_ttl_minutes)
        self.base_url = (base_url or settings.app_base_url).rstrip("/")
        self.clock = clock

    def magic_link(self, token: str) -> str:
        return f"{self.base_url}/verify?token={token}"

    async def request_link(self, email: str, deliver: bool = True) -> str:
        """
        Issue a token for ``email`` and mail the login link.

        Args:
            email: Identity being verified
            deliver: Send the mail. Dev auto-login passes False and redeems
                the returned token itself.

        Returns:
            The raw token. Only in-process callers ever see it.

        Raises:
            MailDeliveryError: The mail was not sent. The token stays
                redeemable until it expires.
        """
        token = generate_token()
        token_hash = hash_token(token)
        expires_at = self.clock() + self.ttl

        self.store.put(
            token_hash,
            AuthToken(token_hash=token_hash, email=email, expires_at=expires_at),
        )
        logger.info("auth_token_created", email=mask_email(email), expires_at=expires_at.isoformat())

        if deliver:
            html_body = build_login_mail(self.magic_link(token), int(self.ttl.total_seconds() // 60))
            try:
                await self.mailer.send(email, LOGIN_MAIL_SUBJECT, html_body)
            except MailDeliveryError:
                raise
            except Exception as e:
                logger.error("magic_link_send_failed", email=mask_email(email), error=str(e))
                raise MailDeliveryError() from e

        return token

    async def verify(self, token: str) -> str:
        """
        Redeem a raw token.

        The lookup, the checks and the consume step run without yielding to
        the event loop, and the consume step is a compare-and-swap in the
        store, so two concurrent calls with one token produce one winner.

        Returns:
            The email bound to the token

        Raises:
            InvalidTokenError: reason ``absent``, ``expired`` or
                ``already-consumed``
        """
        token_hash = hash_token(token)
        record = self.store.get(token_hash)

        if record is None:
            self._reject(InvalidTokenError.ABSENT)

        if record.is_expired(self.clock()):
            self.store.delete(token_hash)
            self._reject(InvalidTokenError.EXPIRED, record.email)

        if record.consumed or not self.store.mark_consumed(token_hash):
            self._reject(InvalidTokenError.ALREADY_CONSUMED, record.email)

        logger.info("auth_token_verified", email=mask_email(record.email))
        return record.email

    def _reject(self, reason: str, email: Optional[str] = None) -> NoReturn:
        logger.warning(
            "auth_token_rejected",
            reason=reason,
            email=mask_email(email) if email else None,
        )
        raise InvalidTokenError(reason)

    def sweep(self) -> None:
        """Drop expired tokens; scheduled hourly."""
        self.store.sweep(self.clock())
