# app/routers/appointment_router.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
import logging

from app.db.models import AppointmentStatus, UserRole
from app.routers.deps import get_appointment_service, get_current_actor, require_roles
from app.services.appointments.appointment_service import AppointmentService
from app.services.auth.identity import Actor
from app.schemas.appointments.appointment import (
    AppointmentCreateRequest,
    AppointmentEnvelope,
    AppointmentListResponse,
    AppointmentResponse,
    FeedbackRequest,
    OTPSentData,
    OTPSentResponse,
    OTPVerifyRequest,
    WidgetVerifyRequest,
)
from app.schemas.common.common import WidgetTokenData, WidgetTokenResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=AppointmentEnvelope, status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: AppointmentCreateRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    service: AppointmentService = Depends(get_appointment_service),
):
    """
    Schedule an appointment for an engineer at a client site.

    The client and the engineer are notified by SMS; a failed notification
    does not fail the request.
    """
    appointment = service.create_appointment(
        actor,
        engineer_id=request.engineer_id,
        client_id=request.client_id,
        visit_date=request.visit_date,
        purpose=request.purpose,
        site_address=request.site_address,
        otp_mobile_number=request.otp_mobile_number,
    )
    return AppointmentEnvelope(
        success=True,
        message="Appointment created successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    status_filter: Optional[AppointmentStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Admins see all appointments, engineers their own"""
    appointments = service.list_appointments(actor, status=status_filter)
    return AppointmentListResponse(
        success=True,
        message=f"Found {len(appointments)} appointments",
        data=[AppointmentResponse.model_validate(a) for a in appointments],
    )


@router.get("/{appointment_id}", response_model=AppointmentEnvelope)
def get_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_current_actor),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_appointment(appointment_id, actor)
    return AppointmentEnvelope(
        success=True,
        message="Appointment retrieved successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.delete("/{appointment_id}", response_model=AppointmentEnvelope)
def cancel_appointment(
    appointment_id: str,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.cancel_appointment(appointment_id, actor)
    return AppointmentEnvelope(
        success=True,
        message="Appointment cancelled successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.post("/{appointment_id}/send-otp", response_model=OTPSentResponse)
def send_otp(
    appointment_id: str,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Text a fresh OTP to the client (or the appointment's OTP mobile number)"""
    dispatch = service.send_otp(appointment_id, actor)
    return _otp_sent("OTP sent successfully", dispatch)


@router.post("/{appointment_id}/resend-otp", response_model=OTPSentResponse)
def resend_otp(
    appointment_id: str,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Same as send-otp, limited to one request per cooldown window"""
    dispatch = service.resend_otp(appointment_id, actor)
    return _otp_sent("OTP resent successfully", dispatch)


@router.post("/{appointment_id}/verify-otp", response_model=AppointmentEnvelope)
def verify_otp(
    appointment_id: str,
    request: OTPVerifyRequest,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.verify_otp(appointment_id, actor, request.otp)
    return AppointmentEnvelope(
        success=True,
        message="OTP verified successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.get("/{appointment_id}/otp-widget-token", response_model=WidgetTokenResponse)
def get_otp_widget_token(
    appointment_id: str,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Token and phone number for the hosted MSG91 OTP widget"""
    grant = service.issue_widget_token(appointment_id, actor)
    return WidgetTokenResponse(
        success=True,
        message="Widget token generated",
        data=WidgetTokenData.model_validate(grant),
    )


@router.post("/{appointment_id}/verify-otp-widget", response_model=AppointmentEnvelope)
def verify_otp_widget(
    appointment_id: str,
    request: WidgetVerifyRequest,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.verify_widget(appointment_id, actor, request.access_token)
    return AppointmentEnvelope(
        success=True,
        message="OTP verified successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


@router.post("/{appointment_id}/feedback", response_model=AppointmentEnvelope)
def submit_feedback(
    appointment_id: str,
    request: FeedbackRequest,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.submit_feedback(appointment_id, actor, request.feedback)
    return AppointmentEnvelope(
        success=True,
        message="Feedback submitted successfully",
        data=AppointmentResponse.model_validate(appointment),
    )


def _otp_sent(message: str, dispatch) -> OTPSentResponse:
    appointment = dispatch.appointment
    return OTPSentResponse(
        success=True,
        message=message,
        data=OTPSentData(
            sent_to=dispatch.sent_to,
            expires_at=appointment.otp_expires_at,
            appointment=AppointmentResponse.model_validate(appointment),
        ),
    )
