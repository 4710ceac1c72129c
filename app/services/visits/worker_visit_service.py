# app/services/visits/worker_visit_service.py
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

from sqlmodel import Session, select

from app.core.clock import utcnow, to_naive_utc
from app.core.config import Settings, settings
from app.core.exceptions import (
    AuthorizationError,
    DeliveryFailureError,
    ExternalVerificationError,
    NotFoundError,
    OTPExpiredError,
    OTPMismatchError,
    RateLimitError,
    StatusConflictError,
    ValidationError,
)
from app.db.models import (
    ADMIN_PHONE_KEY,
    Client,
    Setting,
    User,
    UserRole,
    VisitStatus,
    WorkerVisit,
)
from app.services.auth.identity import Actor
from app.services.otp.otp_utils import generate_otp, worker_visit_otp_expiry, is_otp_expired, cooldown_remaining
from app.services.otp.widget_token import (
    PURPOSE_WORKER_VISIT,
    WidgetTokenGrant,
    issue_widget_token,
    verify_widget_token,
)
from app.services.sms.phone import normalize_phone_number
from app.services.sms.sms_service import DeliveryAttempt, SMSService

logger = logging.getLogger(__name__)


@dataclass
class VisitOTPDispatch:
    """Result of sending one worker-visit OTP to the client and, when configured, the admin"""
    visit: WorkerVisit
    client_phone: str
    client_sent: bool
    admin_phone: Optional[str] = None
    admin_sent: Optional[bool] = None


class WorkerVisitService:
    """
    Worker-count visits: PENDING -> OTP_VERIFIED -> COMPLETED. Only the first
    step happens here; COMPLETED is set by the back office once the count is
    reconciled.

    One OTP goes to the client's primary contact and a copy to the admin phone.
    The client delivery is what counts; the admin copy is best effort. There is
    no attempt limit here, the 24h expiry bounds the code instead.
    """

    def __init__(self, session: Session, sms_service: Optional[SMSService] = None, config: Settings = settings):
        self.session = session
        self.config = config
        self.sms = sms_service or SMSService(session, config)

    def create_visit(
        self,
        actor: Actor,
        client_id: str,
        visit_date: datetime,
        site_address: Optional[str] = None,
        engineer_id: Optional[str] = None,
    ) -> VisitOTPDispatch:
        """
        Record a visit and send its OTP.

        The visit is stored even when the client SMS fails, but without OTP
        fields, so the engineer has to use resend before submitting a count.
        """
        if actor.is_admin:
            if not engineer_id:
                raise ValidationError("Engineer ID is required")
        else:
            if engineer_id and engineer_id != actor.user_id:
                raise AuthorizationError("Engineers can only create visits for themselves")
            engineer_id = actor.user_id

        client = self.session.exec(
            select(Client).where(Client.id == client_id, Client.is_active == True)
        ).first()
        if not client:
            raise NotFoundError("Client not found or inactive")

        engineer = self.session.exec(
            select(User).where(
                User.id == engineer_id,
                User.role == UserRole.ENGINEER,
                User.is_active == True,
            )
        ).first()
        if not engineer:
            raise NotFoundError("Engineer not found or inactive")

        # Copy what we need before the SMS log commits expire the instances
        client_phone = client.primary_contact
        client_name = client.name
        engineer_name = engineer.name
        visit_date = to_naive_utc(visit_date)
        if not (client_phone or "").strip():
            raise ValidationError("Client phone number is missing")

        otp = generate_otp(self.config.OTP_LENGTH)
        client_attempt, admin_phone, admin_attempt = self._deliver(
            otp, client_phone, client_name, engineer_name, visit_date
        )

        visit = WorkerVisit(
            engineer_id=engineer_id,
            client_id=client_id,
            visit_date=visit_date,
            site_address=site_address,
            status=VisitStatus.PENDING,
        )
        if client_attempt:
            self._store_otp(visit, otp)
        else:
            logger.error(f"Worker visit OTP not delivered to client {client_id}: {client_attempt.error}")

        self.session.add(visit)
        self.session.commit()
        self.session.refresh(visit)
        logger.info(f"Worker visit {visit.id} created for engineer {engineer_id} at client {client_id}")

        return VisitOTPDispatch(
            visit=visit,
            client_phone=client_phone,
            client_sent=client_attempt.success,
            admin_phone=admin_phone,
            admin_sent=admin_attempt.success if admin_attempt is not None else None,
        )

    def resend_otp(self, visit_id: str, actor: Actor) -> VisitOTPDispatch:
        visit = self._get_owned(visit_id, actor)
        if visit.status == VisitStatus.COMPLETED:
            raise StatusConflictError("Visit already completed")

        remaining = cooldown_remaining(visit.otp_sent_at, self.config.OTP_RESEND_COOLDOWN_SECONDS)
        if remaining:
            raise RateLimitError(remaining)

        client = self.session.get(Client, visit.client_id)
        engineer = self.session.get(User, visit.engineer_id)
        if not client:
            raise NotFoundError("Client not found")
        client_phone = client.primary_contact
        if not (client_phone or "").strip():
            raise ValidationError("Client phone number is missing")
        client_name = client.name
        engineer_name = engineer.name if engineer else "Engineer"

        otp = generate_otp(self.config.OTP_LENGTH)
        client_attempt, admin_phone, admin_attempt = self._deliver(
            otp, client_phone, client_name, engineer_name, visit.visit_date
        )
        if not client_attempt:
            details = self.sms.last_failure_reason(client_phone) or client_attempt.error
            raise DeliveryFailureError(
                "Failed to resend OTP to client. Please check the phone number and try again.",
                details=details,
                data={"sent_to": client_phone},
            )

        # Status is left alone so a verified visit never drops back to PENDING
        self._store_otp(visit, otp)
        self.session.add(visit)
        self.session.commit()
        self.session.refresh(visit)
        logger.info(f"Worker visit OTP resent for visit {visit_id}")

        return VisitOTPDispatch(
            visit=visit,
            client_phone=client_phone,
            client_sent=True,
            admin_phone=admin_phone,
            admin_sent=admin_attempt.success if admin_attempt is not None else None,
        )

    def submit_worker_count(
        self,
        visit_id: str,
        actor: Actor,
        otp: Optional[str],
        worker_count: Optional[int],
        remarks: Optional[str] = None,
    ) -> WorkerVisit:
        if not otp:
            raise ValidationError("OTP is required")
        self._validate_worker_count(worker_count)

        visit = self._get_owned(visit_id, actor)
        if visit.status == VisitStatus.COMPLETED:
            raise StatusConflictError("Visit already completed")
        if not visit.otp_expires_at or is_otp_expired(visit.otp_expires_at):
            raise OTPExpiredError("OTP has expired. Please request a new OTP.")

        bypass = self.config.OTP_TEST_BYPASS_CODE
        if otp != visit.otp:
            if not (bypass and otp == bypass):
                logger.warning(f"Invalid worker visit OTP for visit {visit_id}")
                raise OTPMismatchError()
            logger.warning(f"Worker visit {visit_id} verified with the test bypass code")

        return self._mark_verified(visit, worker_count, remarks)

    def issue_widget_token(self, visit_id: str, actor: Actor) -> WidgetTokenGrant:
        visit = self._get_owned(visit_id, actor)
        if visit.status == VisitStatus.COMPLETED:
            raise StatusConflictError("Visit already completed")

        client = self.session.get(Client, visit.client_id)
        phone = normalize_phone_number(client.primary_contact if client else "", self.config.NATIONAL_DIALING_PREFIX)
        if not phone:
            raise ValidationError("Invalid client phone number format")

        ttl = self.config.WORKER_VISIT_WIDGET_TOKEN_TTL_SECONDS
        token = issue_widget_token(phone, visit.id, PURPOSE_WORKER_VISIT, ttl, self.config.JWT_SECRET)
        return WidgetTokenGrant(token=token, phone=phone, expires_in=ttl)

    def submit_worker_count_with_widget(
        self,
        visit_id: str,
        actor: Actor,
        access_token: Optional[str],
        worker_count: Optional[int],
        remarks: Optional[str] = None,
    ) -> WorkerVisit:
        if not access_token:
            raise ValidationError("Access token is required")
        self._validate_worker_count(worker_count)

        claims = verify_widget_token(access_token, self.config.JWT_SECRET)
        if (
            not claims
            or claims.get("purpose") != PURPOSE_WORKER_VISIT
            or claims.get("entity_id") != visit_id
        ):
            raise ValidationError("Invalid or expired access token")

        visit = self._get_owned(visit_id, actor)
        if visit.status == VisitStatus.COMPLETED:
            raise StatusConflictError("Visit already completed")

        result = self.sms.verify_widget_access_token(access_token)
        if not result.success:
            raise ExternalVerificationError(result.message)

        return self._mark_verified(visit, worker_count, remarks)

    def get_pending_visits(self, actor: Actor) -> List[WorkerVisit]:
        """Visits still waiting for a worker count, newest first"""
        statement = select(WorkerVisit).where(WorkerVisit.status == VisitStatus.PENDING)
        if not actor.is_admin:
            statement = statement.where(WorkerVisit.engineer_id == actor.user_id)
        return list(self.session.exec(statement.order_by(WorkerVisit.visit_date.desc())).all())

    def get_completed_visits(self, actor: Actor, client_id: Optional[str] = None) -> List[WorkerVisit]:
        """Visits with a recorded worker count (OTP_VERIFIED or COMPLETED), newest first"""
        statement = select(WorkerVisit).where(
            WorkerVisit.status.in_([VisitStatus.OTP_VERIFIED, VisitStatus.COMPLETED])
        )
        if not actor.is_admin:
            statement = statement.where(WorkerVisit.engineer_id == actor.user_id)
        if client_id:
            statement = statement.where(WorkerVisit.client_id == client_id)
        return list(self.session.exec(statement.order_by(WorkerVisit.visit_date.desc())).all())

    def get_admin_phone(self) -> Optional[str]:
        """Admin copy recipient: the admin_phone setting, falling back to ADMIN_PHONE"""
        setting = self.session.exec(select(Setting).where(Setting.key == ADMIN_PHONE_KEY)).first()
        if setting and setting.value.strip():
            return setting.value.strip()
        return self.config.ADMIN_PHONE or None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deliver(self, otp: str, client_phone: str, client_name: str, engineer_name: str, visit_date: datetime):
        date_str = visit_date.strftime("%b %d, %Y")
        client_attempt = self.sms.send_worker_count_otp_to_client(client_phone, otp, client_name, date_str)

        admin_phone = self.get_admin_phone()
        admin_attempt: Optional[DeliveryAttempt] = None
        if not client_attempt:
            # The code is not stored, so the admin must not receive it either
            logger.warning("Client OTP not delivered, skipping admin OTP copy")
        elif admin_phone:
            admin_attempt = self.sms.send_worker_count_otp_to_admin(
                admin_phone, otp, engineer_name, client_name, date_str
            )
            if not admin_attempt:
                logger.warning(f"Admin copy of worker visit OTP not delivered: {admin_attempt.error}")
        else:
            logger.warning("Admin phone not configured, skipping admin OTP copy")
        return client_attempt, admin_phone, admin_attempt

    def _store_otp(self, visit: WorkerVisit, otp: str) -> None:
        now = utcnow()
        visit.otp = otp
        visit.otp_sent_at = now
        visit.otp_expires_at = worker_visit_otp_expiry(self.config.WORKER_VISIT_OTP_EXPIRY_HOURS, now=now)
        visit.updated_at = now

    def _mark_verified(self, visit: WorkerVisit, worker_count: int, remarks: Optional[str]) -> WorkerVisit:
        now = utcnow()
        visit.status = VisitStatus.OTP_VERIFIED
        visit.verified_at = now
        visit.worker_count = worker_count
        visit.remarks = remarks
        visit.updated_at = now
        self.session.add(visit)
        self.session.commit()
        self.session.refresh(visit)
        logger.info(f"Worker count {worker_count} recorded for visit {visit.id}")
        return visit

    @staticmethod
    def _validate_worker_count(worker_count: Optional[int]) -> None:
        if worker_count is None or isinstance(worker_count, bool) or worker_count <= 0:
            raise ValidationError("Worker count must be a positive number")

    def _get_owned(self, visit_id: str, actor: Actor) -> WorkerVisit:
        visit = self.session.get(WorkerVisit, visit_id)
        if not visit:
            raise NotFoundError("Visit not found")
        if visit.engineer_id != actor.user_id:
            raise AuthorizationError()
        return visit
