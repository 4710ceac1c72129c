# Appointment schemas
from .appointment import (
    AppointmentCreateRequest,
    AppointmentResponse,
    AppointmentEnvelope,
    AppointmentListResponse,
    OTPVerifyRequest,
    WidgetVerifyRequest,
    FeedbackRequest,
    OTPSentData,
    OTPSentResponse
)

__all__ = [
    "AppointmentCreateRequest",
    "AppointmentResponse",
    "AppointmentEnvelope",
    "AppointmentListResponse",
    "OTPVerifyRequest",
    "WidgetVerifyRequest",
    "FeedbackRequest",
    "OTPSentData",
    "OTPSentResponse"
]
