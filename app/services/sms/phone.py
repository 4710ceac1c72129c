# app/services/sms/phone.py
from typing import Optional
import logging
import re

from app.core.config import settings

logger = logging.getLogger(__name__)

CANONICAL_LENGTH = 12


def normalize_phone_number(phone: str, prefix: Optional[str] = None) -> Optional[str]:
    """
    Normalize a phone number to the dialing-code-qualified form used by the SMS provider,
    e.g. "+91 81548-31233" -> "918154831233".

    Returns None when the input cannot be mapped to a usable number. Never raises.
    """
    if not phone or not isinstance(phone, str):
        return None

    prefix = prefix or settings.NATIONAL_DIALING_PREFIX
    national_length = CANONICAL_LENGTH - len(prefix)

    cleaned = re.sub(r"\D", "", phone)
    if not cleaned:
        return None

    if cleaned.startswith(prefix):
        if len(cleaned) == CANONICAL_LENGTH:
            return cleaned
        if len(cleaned) > CANONICAL_LENGTH:
            logger.warning(
                f"Phone number {phone} has more than {CANONICAL_LENGTH} digits after {prefix}. "
                f"Using first {CANONICAL_LENGTH} digits."
            )
            return cleaned[:CANONICAL_LENGTH]
        logger.error(f"Invalid phone number format: {phone} (starts with {prefix} but has {len(cleaned)} digits)")
        return None

    if len(cleaned) == national_length:
        return f"{prefix}{cleaned}"

    if len(cleaned) == national_length + 1 and cleaned.startswith("0"):
        return f"{prefix}{cleaned[1:]}"

    # Possibly a foreign number; accepted without the national prefix
    if national_length < len(cleaned) <= CANONICAL_LENGTH + 1:
        logger.warning(
            f"Phone number {phone} has {len(cleaned)} digits but doesn't start with {prefix}. Using as is."
        )
        return cleaned

    logger.error(f"Invalid phone number format: {phone} (has {len(cleaned)} digits, expected {national_length} or {CANONICAL_LENGTH})")
    return None


def last_digits(phone: str, count: int = 10) -> str:
    """Trailing digits of a phone number, used to match log rows across formats"""
    return re.sub(r"\D", "", phone or "")[-count:]
