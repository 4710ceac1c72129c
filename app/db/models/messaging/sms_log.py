# app/db/models/messaging/sms_log.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow

SMS_STATUS_SENT = "sent"
SMS_STATUS_FAILED = "failed"


class SMSLog(SQLModel, table=True):
    """Append-only record of every outbound SMS / OTP delivery attempt"""
    __tablename__ = "sms_logs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    phone: str = Field(max_length=50, index=True)  # normalized when normalization succeeded
    message: str  # message body, or "OTP: <code>" for the OTP API
    status: str = Field(max_length=10)  # "sent" | "failed"
    provider: Optional[str] = Field(default=None, max_length=50)
    provider_id: Optional[str] = Field(default=None, max_length=200)
    error: Optional[str] = Field(default=None)
    sent_at: datetime = Field(default_factory=utcnow, index=True)
