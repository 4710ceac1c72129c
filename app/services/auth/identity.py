# app/services/auth/identity.py
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import jwt

from app.core.config import settings
from app.db.models import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, as asserted by the access token"""
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode an access token issued by the auth service; None if invalid or expired"""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected access token: {e}")
        return None


def actor_from_claims(claims: Dict[str, Any]) -> Optional[Actor]:
    # Older tokens carry "userId" instead of "sub"
    user_id = claims.get("sub") or claims.get("userId")
    role = claims.get("role")
    if not user_id or not isinstance(role, str):
        return None
    try:
        return Actor(user_id=str(user_id), role=UserRole(role.upper()))
    except ValueError:
        logger.warning(f"Unknown role in access token: {role}")
        return None
