# app/schemas/appointments/appointment.py
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime

from app.db.models import AppointmentStatus


class AppointmentCreateRequest(BaseModel):
    """Request schema for scheduling an appointment (admin only)"""
    engineer_id: str
    client_id: str
    visit_date: datetime = Field(..., description="Scheduled date and time of the visit")
    purpose: Optional[str] = None
    site_address: Optional[str] = None
    otp_mobile_number: Optional[str] = Field(
        None, description="Send OTPs here instead of the client's primary contact"
    )


class AppointmentResponse(BaseModel):
    """Appointment as exposed over the API. The OTP itself is never returned."""
    id: str
    engineer_id: str
    client_id: str
    visit_date: datetime
    purpose: Optional[str] = None
    site_address: Optional[str] = None
    otp_mobile_number: Optional[str] = None
    status: AppointmentStatus
    otp_sent_at: Optional[datetime] = None
    otp_expires_at: Optional[datetime] = None
    otp_attempts: int = 0
    verified_at: Optional[datetime] = None
    feedback: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentEnvelope(BaseModel):
    success: bool
    message: str
    data: Optional[AppointmentResponse] = None


class AppointmentListResponse(BaseModel):
    success: bool
    message: str
    data: List[AppointmentResponse] = Field(default_factory=list)


class OTPVerifyRequest(BaseModel):
    # Optional so a missing code is reported in the usual error envelope
    otp: Optional[str] = Field(None, description="Code read out by the client")


class WidgetVerifyRequest(BaseModel):
    access_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("access_token", "accessToken"),
        description="Token issued by GET /otp-widget-token, after the widget reported success",
    )


class FeedbackRequest(BaseModel):
    feedback: Optional[str] = Field(None, description="Visit notes, at least 10 characters")


class OTPSentData(BaseModel):
    sent_to: str
    expires_at: datetime
    appointment: AppointmentResponse


class OTPSentResponse(BaseModel):
    success: bool
    message: str
    data: Optional[OTPSentData] = None
