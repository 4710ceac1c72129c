# app/services/otp/otp_utils.py
from datetime import datetime, timedelta
from typing import Optional
import math
import random
import string

from app.core.clock import utcnow
from app.core.config import settings


def generate_otp(length: Optional[int] = None) -> str:
    """Generate a random numeric OTP code (leading zeros allowed)"""
    length = length or settings.OTP_LENGTH
    return ''.join(random.choices(string.digits, k=length))


def otp_expiry(minutes: Optional[int] = None, now: Optional[datetime] = None) -> datetime:
    """Expiry for appointment OTPs"""
    minutes = minutes if minutes is not None else settings.OTP_EXPIRY_MINUTES
    return (now or utcnow()) + timedelta(minutes=minutes)


def worker_visit_otp_expiry(hours: Optional[int] = None, now: Optional[datetime] = None) -> datetime:
    """Expiry for worker-visit OTPs"""
    hours = hours if hours is not None else settings.WORKER_VISIT_OTP_EXPIRY_HOURS
    return (now or utcnow()) + timedelta(hours=hours)


def is_otp_expired(expires_at: datetime, now: Optional[datetime] = None) -> bool:
    # A check made exactly at the expiry instant is still valid
    return (now or utcnow()) > expires_at


def cooldown_remaining(last_sent_at: Optional[datetime], cooldown_seconds: int, now: Optional[datetime] = None) -> int:
    """Whole seconds left before another OTP may be sent, 0 when the cooldown has elapsed"""
    if last_sent_at is None:
        return 0
    elapsed = ((now or utcnow()) - last_sent_at).total_seconds()
    if elapsed >= cooldown_seconds:
        return 0
    remaining = cooldown_seconds - elapsed
    return max(1, math.ceil(remaining))
