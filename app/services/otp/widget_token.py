# app/services/otp/widget_token.py
"""
Signed tokens for the hosted MSG91 OTP widget.

A token binds a normalized phone number to one appointment or worker visit.
Decoding it only proves that a widget session was issued for that pair; the
provider's verifyAccessToken call is what proves the user entered the OTP.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Optional
import logging

import jwt

from app.core.clock import utcnow
from app.core.config import settings

logger = logging.getLogger(__name__)

PURPOSE_APPOINTMENT = "appointment"
PURPOSE_WORKER_VISIT = "worker_visit"

REQUIRED_CLAIMS = ("phone", "entity_id", "purpose", "exp")


@dataclass
class WidgetTokenGrant:
    token: str
    phone: str
    expires_in: int


def issue_widget_token(
    phone: str,
    entity_id: str,
    purpose: str,
    ttl_seconds: int,
    secret: Optional[str] = None,
) -> str:
    now = utcnow()
    payload = {
        "phone": phone,
        "entity_id": entity_id,
        "purpose": purpose,
        "iat": now,
        "exp": now + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_widget_token(token: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Decode a widget token. Returns None if it is malformed, tampered with or expired."""
    if not token or not isinstance(token, str):
        return None
    try:
        claims = jwt.decode(
            token,
            secret or settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": list(REQUIRED_CLAIMS)},
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Widget token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid widget token: {e}")
        return None
    return claims
