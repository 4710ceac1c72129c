# app/db/models/visits/worker_visit.py
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow


class VisitStatus(str, Enum):
    PENDING = "PENDING"
    OTP_VERIFIED = "OTP_VERIFIED"
    COMPLETED = "COMPLETED"


class WorkerVisit(SQLModel, table=True):
    """Worker-count visit, confirmed by an OTP shared with the client and the admin"""
    __tablename__ = "worker_visits"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    engineer_id: str = Field(foreign_key="users.id", index=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    visit_date: datetime = Field(index=True)
    site_address: Optional[str] = Field(default=None)

    otp: Optional[str] = Field(default=None, max_length=10)
    otp_sent_at: Optional[datetime] = Field(default=None)
    otp_expires_at: Optional[datetime] = Field(default=None)
    status: VisitStatus = Field(default=VisitStatus.PENDING, index=True)
    verified_at: Optional[datetime] = Field(default=None)

    # Set only once the OTP has been verified
    worker_count: Optional[int] = Field(default=None)
    remarks: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
