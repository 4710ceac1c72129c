# app/db/models/appointments/appointment.py
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from app.core.clock import utcnow


class AppointmentStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    OTP_SENT = "OTP_SENT"
    VERIFIED = "VERIFIED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_APPOINTMENT_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)


class Appointment(SQLModel, table=True):
    """Scheduled site visit, verified with an SMS OTP sent to the client"""
    __tablename__ = "appointments"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    engineer_id: str = Field(foreign_key="users.id", index=True)
    client_id: str = Field(foreign_key="clients.id", index=True)
    visit_date: datetime = Field(index=True)
    purpose: Optional[str] = Field(default=None)
    site_address: Optional[str] = Field(default=None)
    otp_mobile_number: Optional[str] = Field(default=None, max_length=20)  # overrides client primary contact
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED, index=True)

    # Only meaningful while status is OTP_SENT or VERIFIED
    otp: Optional[str] = Field(default=None, max_length=10)
    otp_expires_at: Optional[datetime] = Field(default=None)
    otp_sent_at: Optional[datetime] = Field(default=None)
    otp_attempts: int = Field(default=0)
    verified_at: Optional[datetime] = Field(default=None)

    feedback: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
