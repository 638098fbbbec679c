"""
Data masking utilities for logs and API responses.
"""


def mask_business_number(business_number: str) -> str:
    """
    Mask a business registration number (사업자등록번호) for logs.

    Examples:
        "123-45-67890" -> "123-**-***90"
        "1234567890" -> "123*****90"

    Args:
        business_number: Full business registration number

    Returns:
        Masked number keeping the 3-digit office code and the last 2 digits
    """
    if not business_number:
        return ""

    digits = business_number.replace("-", "").replace(" ", "")
    if len(digits) <= 5:
        return digits

    masked = digits[:3] + "*" * (len(digits) - 5) + digits[-2:]

    # Restore the standard 3-2-5 grouping when the input used it
    if "-" in business_number and len(digits) == 10:
        return f"{masked[:3]}-{masked[3:5]}-{masked[5:]}"

    return masked


def mask_email(email: str) -> str:
    """
    Mask email for display.

    Examples:
        "user@example.com" -> "u***@example.com"
        "john.doe@company.co.kr" -> "j*******@company.co.kr"

    Args:
        email: Full email address

    Returns:
        Masked email showing first letter and domain
    """
    if not email or "@" not in email:
        return email

    local, domain = email.rsplit("@", 1)

    if len(local) <= 1:
        return email

    masked_local = local[0] + "*" * (len(local) - 1)
    return f"{masked_local}@{domain}"
