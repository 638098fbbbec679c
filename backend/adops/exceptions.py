"""
Domain errors for the ad operations console.

Each error carries the HTTP status the API layer answers with; the
handler in ``adops.main`` renders ``{"error": message}``.
"""

from typing import Optional


class AdOpsError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    default_message: str = "요청을 처리하지 못했습니다"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# === Validation ===


class ValidationFailedError(AdOpsError):
    status_code = 400
    default_message = "입력값이 올바르지 않습니다"


class NotFoundError(AdOpsError):
    status_code = 404
    default_message = "대상을 찾을 수 없습니다"


# === Authentication / authorization ===


class InvalidTokenError(AdOpsError):
    """
    Magic-link verification failed.

    ``reason`` is one of ``absent``, ``expired``, ``already-consumed``. It is
    kept for logs and tests only; the message shown to callers is the same
    for every reason.
    """

    status_code = 401
    default_message = "링크가 유효하지 않거나 만료되었습니다."

    ABSENT = "absent"
    EXPIRED = "expired"
    ALREADY_CONSUMED = "already-consumed"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__()


class UnauthorizedError(AdOpsError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(AdOpsError):
    status_code = 403
    default_message = "Forbidden"


# === Workflow ===


class InvariantViolationError(AdOpsError):
    """A workflow rule that must never be broken (e.g. reissuing an issued invoice)."""

    status_code = 409
    default_message = "허용되지 않는 작업입니다"


class InvalidTransitionError(AdOpsError):
    status_code = 409
    default_message = "현재 상태에서는 수행할 수 없는 작업입니다"


class ConcurrentModificationError(AdOpsError):
    status_code = 409
    default_message = "다른 요청이 먼저 상태를 변경했습니다. 다시 조회해주세요"


# === External services ===


class FiscalServiceUnavailableError(AdOpsError):
    """Transport failure, timeout or malformed response from the e-tax-invoice provider."""

    status_code = 503
    default_message = "외부 세금계산서 서비스에 연결할 수 없습니다"


class FiscalRejectedError(AdOpsError):
    """Business-rule rejection; ``message`` is the provider's text, verbatim."""

    status_code = 400

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)


class MailDeliveryError(AdOpsError):
    status_code = 503
    default_message = "인증 링크 발송에 실패했습니다. 잠시 후 다시 시도해주세요"
