# app/services/appointments/appointment_service.py
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging
import re

from sqlmodel import Session, select

from app.core.clock import utcnow, to_naive_utc
from app.core.config import Settings, settings
from app.core.exceptions import (
    AuthorizationError,
    DeliveryFailureError,
    ExternalVerificationError,
    NotFoundError,
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPMismatchError,
    RateLimitError,
    StatusConflictError,
    ValidationError,
)
from app.db.models import (
    Appointment,
    AppointmentStatus,
    Client,
    TERMINAL_APPOINTMENT_STATUSES,
    User,
    UserRole,
)
from app.services.auth.identity import Actor
from app.services.otp.otp_utils import generate_otp, otp_expiry, is_otp_expired, cooldown_remaining
from app.services.otp.widget_token import (
    PURPOSE_APPOINTMENT,
    WidgetTokenGrant,
    issue_widget_token,
    verify_widget_token,
)
from app.services.sms.phone import normalize_phone_number
from app.services.sms.sms_service import SMSService

logger = logging.getLogger(__name__)

OTP_MOBILE_PATTERN = re.compile(r"^\+?\d{10,}$")
MIN_FEEDBACK_LENGTH = 10


@dataclass
class OTPDispatch:
    appointment: Appointment
    sent_to: str


class AppointmentService:
    """
    Appointment visit verification.

    SCHEDULED -> OTP_SENT -> VERIFIED -> COMPLETED, with CANCELLED reachable
    from any non-terminal state. The engineer asks for an OTP that is texted to
    the client; the client reads it back on site. Status never moves backwards,
    so once an appointment is VERIFIED no new OTP is issued for it.
    """

    def __init__(self, session: Session, sms_service: Optional[SMSService] = None, config: Settings = settings):
        self.session = session
        self.config = config
        self.sms = sms_service or SMSService(session, config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_appointment(
        self,
        actor: Actor,
        engineer_id: str,
        client_id: str,
        visit_date: datetime,
        purpose: Optional[str] = None,
        site_address: Optional[str] = None,
        otp_mobile_number: Optional[str] = None,
    ) -> Appointment:
        """Schedule a visit and notify both the client and the engineer by SMS"""
        if not actor.is_admin:
            raise AuthorizationError("Only admins can schedule appointments")

        engineer = self.session.exec(
            select(User).where(
                User.id == engineer_id,
                User.role == UserRole.ENGINEER,
                User.is_active == True,
            )
        ).first()
        if not engineer:
            raise NotFoundError("Engineer not found or inactive")

        client = self.session.exec(
            select(Client).where(Client.id == client_id, Client.is_active == True)
        ).first()
        if not client:
            raise NotFoundError("Client not found or inactive")

        visit_date = to_naive_utc(visit_date)
        if visit_date.date() < utcnow().date():
            raise ValidationError("Visit date cannot be in the past")

        otp_mobile_number = (otp_mobile_number or "").strip() or None
        if otp_mobile_number and not OTP_MOBILE_PATTERN.match(otp_mobile_number):
            raise ValidationError("Invalid OTP mobile number format")

        appointment = Appointment(
            engineer_id=engineer.id,
            client_id=client.id,
            visit_date=visit_date,
            purpose=purpose,
            site_address=site_address,
            otp_mobile_number=otp_mobile_number,
        )
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"Appointment {appointment.id} scheduled for engineer {engineer.id} at client {client.id}")

        # Notifications are informational; a failed send is logged, not raised
        date_str = visit_date.strftime("%b %d, %Y")
        time_str = visit_date.strftime("%I:%M %p")
        location = site_address or client.address or "Not specified"
        if not self.sms.send_appointment_notification(client.primary_contact, engineer.name, date_str, time_str, location):
            logger.warning(f"Appointment notification to client {client.id} was not delivered")
        if engineer.phone:
            if not self.sms.send_engineer_notification(
                engineer.phone, client.name, date_str, time_str, location, purpose or "Site visit"
            ):
                logger.warning(f"Appointment notification to engineer {engineer.id} was not delivered")

        self.session.refresh(appointment)
        return appointment

    def list_appointments(
        self, actor: Actor, status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        """Admins see every appointment, engineers only their own. Newest visit first."""
        statement = select(Appointment)
        if not actor.is_admin:
            statement = statement.where(Appointment.engineer_id == actor.user_id)
        if status is not None:
            statement = statement.where(Appointment.status == status)
        return list(self.session.exec(statement.order_by(Appointment.visit_date.desc())).all())

    def get_appointment(self, appointment_id: str, actor: Actor) -> Appointment:
        if actor.is_admin:
            return self._get_appointment(appointment_id)
        return self._get_owned(appointment_id, actor)

    def cancel_appointment(self, appointment_id: str, actor: Actor) -> Appointment:
        if not actor.is_admin:
            raise AuthorizationError("Only admins can cancel appointments")
        appointment = self._get_appointment(appointment_id)
        if appointment.status == AppointmentStatus.COMPLETED:
            raise StatusConflictError("Cannot cancel a completed appointment")
        if appointment.status == AppointmentStatus.CANCELLED:
            raise StatusConflictError("Appointment is already cancelled")

        appointment.status = AppointmentStatus.CANCELLED
        appointment.updated_at = utcnow()
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"Appointment {appointment_id} cancelled")
        return appointment

    def submit_feedback(self, appointment_id: str, actor: Actor, feedback: Optional[str]) -> Appointment:
        text = (feedback or "").strip()
        if len(text) < MIN_FEEDBACK_LENGTH:
            raise ValidationError(f"Feedback must be at least {MIN_FEEDBACK_LENGTH} characters")

        appointment = self._get_owned(appointment_id, actor)
        if appointment.status != AppointmentStatus.VERIFIED:
            raise StatusConflictError("Appointment must be verified before submitting feedback")

        appointment.feedback = text
        appointment.status = AppointmentStatus.COMPLETED
        appointment.updated_at = utcnow()
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"Appointment {appointment_id} completed")
        return appointment

    # ------------------------------------------------------------------
    # SMS OTP
    # ------------------------------------------------------------------

    def send_otp(self, appointment_id: str, actor: Actor) -> OTPDispatch:
        appointment = self._get_owned(appointment_id, actor)
        self._ensure_can_issue(appointment)
        recipient = self._recipient(appointment)
        return self._dispatch_otp(appointment, recipient, resend=False)

    def resend_otp(self, appointment_id: str, actor: Actor) -> OTPDispatch:
        appointment = self._get_owned(appointment_id, actor)
        self._ensure_can_issue(appointment)

        remaining = cooldown_remaining(appointment.otp_sent_at, self.config.OTP_RESEND_COOLDOWN_SECONDS)
        if remaining:
            logger.info(f"OTP resend for appointment {appointment_id} throttled, {remaining}s left")
            raise RateLimitError(remaining)

        recipient = self._recipient(appointment)
        return self._dispatch_otp(appointment, recipient, resend=True)

    def verify_otp(self, appointment_id: str, actor: Actor, otp: Optional[str]) -> Appointment:
        """
        Check a code typed in by the engineer.

        Both outcomes consume an attempt. The attempt that exhausts the budget
        is reported as OTPAttemptsExceededError rather than a plain mismatch,
        and from then on the appointment needs a fresh OTP.
        """
        if not otp:
            raise ValidationError("OTP is required")

        appointment = self._get_owned(appointment_id, actor)
        if appointment.status in TERMINAL_APPOINTMENT_STATUSES:
            raise StatusConflictError(f"Appointment is {appointment.status.value.lower()}")
        if not appointment.otp or not appointment.otp_expires_at:
            raise StatusConflictError("OTP has not been sent for this appointment")
        if is_otp_expired(appointment.otp_expires_at):
            raise OTPExpiredError("OTP has expired. Please request a new one.")

        max_attempts = self.config.OTP_MAX_ATTEMPTS
        previous_attempts = appointment.otp_attempts
        if previous_attempts >= max_attempts:
            raise OTPAttemptsExceededError()

        appointment.otp_attempts = previous_attempts + 1
        appointment.updated_at = utcnow()

        if otp != appointment.otp and not self._is_bypass_code(otp):
            self.session.add(appointment)
            self.session.commit()
            logger.warning(
                f"Invalid OTP for appointment {appointment_id} "
                f"(attempt {previous_attempts + 1}/{max_attempts})"
            )
            if previous_attempts + 1 >= max_attempts:
                raise OTPAttemptsExceededError()
            raise OTPMismatchError(attempts_remaining=max_attempts - 1 - previous_attempts)

        if otp != appointment.otp:
            logger.warning(f"Appointment {appointment_id} verified with the test bypass code")

        appointment.status = AppointmentStatus.VERIFIED
        appointment.verified_at = utcnow()
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"Appointment {appointment_id} verified")
        return appointment

    # ------------------------------------------------------------------
    # Hosted widget
    # ------------------------------------------------------------------

    def issue_widget_token(self, appointment_id: str, actor: Actor) -> WidgetTokenGrant:
        appointment = self._get_owned(appointment_id, actor)
        self._ensure_can_issue(appointment)

        recipient = self._recipient(appointment)
        phone = normalize_phone_number(recipient, self.config.NATIONAL_DIALING_PREFIX)
        if not phone:
            raise ValidationError("Invalid client phone number format")

        ttl = self.config.WIDGET_TOKEN_TTL_SECONDS
        token = issue_widget_token(phone, appointment.id, PURPOSE_APPOINTMENT, ttl, self.config.JWT_SECRET)
        return WidgetTokenGrant(token=token, phone=phone, expires_in=ttl)

    def verify_widget(self, appointment_id: str, actor: Actor, access_token: Optional[str]) -> Appointment:
        if not access_token:
            raise ValidationError("Access token is required")

        # Checked before anything else so a token for another entity never reaches the provider
        claims = verify_widget_token(access_token, self.config.JWT_SECRET)
        if (
            not claims
            or claims.get("purpose") != PURPOSE_APPOINTMENT
            or claims.get("entity_id") != appointment_id
        ):
            raise ValidationError("Invalid or expired access token")

        appointment = self._get_owned(appointment_id, actor)
        if appointment.status in TERMINAL_APPOINTMENT_STATUSES:
            raise StatusConflictError(f"Appointment is {appointment.status.value.lower()}")

        result = self.sms.verify_widget_access_token(access_token)
        if not result.success:
            raise ExternalVerificationError(result.message)

        appointment.status = AppointmentStatus.VERIFIED
        appointment.verified_at = utcnow()
        appointment.otp_attempts = 0
        appointment.updated_at = utcnow()
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"Appointment {appointment_id} verified through the OTP widget")
        return appointment

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.session.get(Appointment, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def _get_owned(self, appointment_id: str, actor: Actor) -> Appointment:
        appointment = self._get_appointment(appointment_id)
        if appointment.engineer_id != actor.user_id:
            raise AuthorizationError()
        return appointment

    @staticmethod
    def _ensure_can_issue(appointment: Appointment) -> None:
        if appointment.status == AppointmentStatus.COMPLETED:
            raise StatusConflictError("Appointment already completed")
        if appointment.status == AppointmentStatus.CANCELLED:
            raise StatusConflictError("Appointment has been cancelled")
        if appointment.status == AppointmentStatus.VERIFIED:
            raise StatusConflictError("Appointment already verified")

    def _recipient(self, appointment: Appointment) -> str:
        if appointment.otp_mobile_number:
            return appointment.otp_mobile_number
        client = self.session.get(Client, appointment.client_id)
        if not client or not (client.primary_contact or "").strip():
            raise ValidationError("Client phone number is missing")
        return client.primary_contact

    def _is_bypass_code(self, otp: str) -> bool:
        bypass = self.config.OTP_TEST_BYPASS_CODE
        return bool(bypass) and otp == bypass

    def _dispatch_otp(self, appointment: Appointment, recipient: str, resend: bool) -> OTPDispatch:
        appointment_id = appointment.id
        engineer = self.session.get(User, appointment.engineer_id)
        engineer_name = engineer.name if engineer else "our engineer"

        otp = generate_otp(self.config.OTP_LENGTH)
        attempt = self.sms.send_visit_otp(recipient, otp, engineer_name)
        if not attempt:
            details = attempt.error
            if resend:
                details = self.sms.last_failure_reason(recipient) or details
            logger.error(f"OTP delivery failed for appointment {appointment_id}: {details}")
            raise DeliveryFailureError(
                "Failed to send OTP. Please check the client's phone number and try again.",
                details=details,
                data={"sent_to": recipient},
            )

        now = utcnow()
        appointment.otp = otp
        appointment.otp_sent_at = now
        appointment.otp_expires_at = otp_expiry(self.config.OTP_EXPIRY_MINUTES, now=now)
        appointment.otp_attempts = 0
        appointment.status = AppointmentStatus.OTP_SENT
        appointment.updated_at = now
        self.session.add(appointment)
        self.session.commit()
        self.session.refresh(appointment)
        logger.info(f"OTP {'resent' if resend else 'sent'} for appointment {appointment_id} to {attempt.phone}")
        return OTPDispatch(appointment=appointment, sent_to=recipient)
