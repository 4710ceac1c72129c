# app/services/sms/sms_service.py
from dataclasses import dataclass
from typing import Any, Dict, Optional
import logging

import requests
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.config import Settings, settings
from app.db.models import SMSLog, SMS_STATUS_SENT, SMS_STATUS_FAILED
from app.services.sms.phone import normalize_phone_number, last_digits

logger = logging.getLogger(__name__)

INVALID_PHONE_ERROR = "Invalid phone number format"
UNKNOWN_ERROR = "Unknown error"

CHANNEL_OTP_API = "otp_api"
CHANNEL_SMS_TEMPLATE = "sms_template"
CHANNEL_SMS = "sms"


@dataclass
class DeliveryAttempt:
    """Outcome of one provider call. The matching SMSLog row has already been written."""
    success: bool
    phone: str
    channel: str
    provider_id: Optional[str] = None
    error: Optional[str] = None
    fallback_used: bool = False

    def __bool__(self) -> bool:
        return self.success


@dataclass
class WidgetVerification:
    success: bool
    message: str


class SMSService:
    """
    SMS gateway backed by MSG91
    API Documentation: https://docs.msg91.com/

    Every send goes through exactly one provider call and leaves one SMSLog row,
    whether it succeeded or not. Nothing here raises to the caller; check the
    returned DeliveryAttempt before committing state that assumes delivery.

    OTPs go through the dedicated /otp endpoint when MSG91_OTP_TEMPLATE_ID is set
    and fall back to a regular SMS otherwise or when that call fails.
    """

    def __init__(self, session: Session, config: Settings = settings):
        self.session = session
        self.config = config
        self.base_url = config.MSG91_BASE_URL.rstrip("/")
        self.auth_key = config.MSG91_AUTH_KEY
        self.provider = config.SMS_PROVIDER_NAME

        if not self.auth_key:
            logger.warning("MSG91 auth key not configured. SMS sending will fail. Set MSG91_AUTH_KEY environment variable.")
        elif config.MSG91_TEMPLATE_ID:
            logger.debug(f"Using SMS template: {config.MSG91_TEMPLATE_ID}")

    # ------------------------------------------------------------------
    # Plain / templated SMS
    # ------------------------------------------------------------------

    def send(self, to: str, message: str, template_id: Optional[str] = None) -> DeliveryAttempt:
        """Send an SMS through the MSG91 flow endpoint (templated when a template is configured)"""
        normalized_phone = normalize_phone_number(to, self.config.NATIONAL_DIALING_PREFIX)
        if not normalized_phone:
            logger.error(f"Invalid phone number format: {to}")
            return self._record(to, message, CHANNEL_SMS, success=False, error=INVALID_PHONE_ERROR)

        template = template_id or self.config.MSG91_TEMPLATE_ID
        if template:
            channel = CHANNEL_SMS_TEMPLATE
            payload = {
                "template_id": template,
                "sender": self.config.MSG91_SENDER_ID,
                "short_url": "0",
                "mobiles": normalized_phone,
                "var1": message,
            }
        else:
            channel = CHANNEL_SMS
            payload = {
                "sender": self.config.MSG91_SENDER_ID,
                "route": self.config.MSG91_ROUTE,
                "country": self.config.NATIONAL_DIALING_PREFIX,
                "sms": [{"message": message, "to": [normalized_phone]}],
            }

        try:
            data = self._post(f"{self.base_url}/flow/", payload)
        except (requests.exceptions.RequestException, ValueError) as e:
            error = self._extract_error(e)
            logger.error(f"MSG91 SMS sending failed for {normalized_phone} (original: {to}): {error}")
            return self._record(normalized_phone, message, channel, success=False, error=error)

        success = data.get("type") == "success"
        provider_id = data.get("request_id") or data.get("message_id")
        if success:
            logger.info(f"SMS sent via MSG91 to {normalized_phone}, request_id={provider_id}")
        else:
            logger.error(f"MSG91 rejected SMS for {normalized_phone}: {data}")
        return self._record(
            normalized_phone,
            message,
            channel,
            success=success,
            provider_id=provider_id,
            error=None if success else (data.get("message") or UNKNOWN_ERROR),
        )

    # ------------------------------------------------------------------
    # OTP delivery
    # ------------------------------------------------------------------

    def otp_message(self, otp: str, validity_minutes: Optional[int] = None) -> str:
        minutes = validity_minutes or self.config.OTP_EXPIRY_MINUTES
        return f"Your OTP is: {otp}. Valid for {minutes} minutes. Do not share with anyone."

    def send_otp(self, to: str, otp: str, message: Optional[str] = None) -> DeliveryAttempt:
        """
        Send an OTP: MSG91 OTP API first, then a regular SMS carrying `message`
        (or the default OTP text) if the OTP API is not configured or fails.
        """
        marker = f"OTP: {otp}"
        normalized_phone = normalize_phone_number(to, self.config.NATIONAL_DIALING_PREFIX)
        if not normalized_phone:
            logger.error(f"Invalid phone number format: {to}")
            return self._record(to, marker, CHANNEL_OTP_API, success=False, error=INVALID_PHONE_ERROR)

        if self.config.MSG91_OTP_TEMPLATE_ID:
            attempt = self._send_via_otp_api(normalized_phone, otp)
            if attempt:
                return attempt
            logger.warning(f"OTP API failed, trying regular SMS for {normalized_phone}")
        else:
            logger.info(f"No OTP template configured, using regular SMS for {normalized_phone} (original: {to})")

        fallback = self.send(normalized_phone, message or self.otp_message(otp))
        fallback.fallback_used = True
        if not fallback:
            logger.error(f"Both OTP API and regular SMS failed for {normalized_phone}")
        return fallback

    def _send_via_otp_api(self, normalized_phone: str, otp: str) -> DeliveryAttempt:
        marker = f"OTP: {otp}"
        payload = {
            "template_id": self.config.MSG91_OTP_TEMPLATE_ID,
            "mobile": normalized_phone,
            "otp": otp,
        }
        try:
            data = self._post(f"{self.base_url}/otp", payload)
        except (requests.exceptions.RequestException, ValueError) as e:
            error = self._extract_error(e)
            logger.error(f"MSG91 OTP sending failed for {normalized_phone}: {error}")
            return self._record(normalized_phone, marker, CHANNEL_OTP_API, success=False, error=error)

        success = data.get("type") == "success"
        if success:
            logger.info(f"OTP sent via MSG91 OTP API to {normalized_phone}, request_id={data.get('request_id')}")
        else:
            logger.error(f"MSG91 OTP API failed for {normalized_phone}: {data}")
        return self._record(
            normalized_phone,
            marker,
            CHANNEL_OTP_API,
            success=success,
            provider_id=data.get("request_id"),
            error=None if success else (data.get("message") or UNKNOWN_ERROR),
        )

    def send_visit_otp(self, to: str, otp: str, engineer_name: str) -> DeliveryAttempt:
        """OTP the client reads out to the engineer to confirm an appointment visit"""
        message = (
            f"Your OTP for visit verification with {engineer_name} is: {otp}. "
            f"Valid for {self.config.OTP_EXPIRY_MINUTES} minutes. "
            f"Share it only with the engineer at your site. - {self.config.COMPANY_NAME}"
        )
        return self.send_otp(to, otp, message=message)

    def send_worker_count_otp_to_client(self, to: str, otp: str, site_name: str, date_str: str) -> DeliveryAttempt:
        message = (
            f"Worker count verification for {site_name} on {date_str}. Your OTP is: {otp}. "
            f"Valid for {self.config.WORKER_VISIT_OTP_EXPIRY_HOURS} hours. Do not share with anyone. "
            f"- {self.config.COMPANY_NAME}"
        )
        return self.send_otp(to, otp, message=message)

    def send_worker_count_otp_to_admin(
        self, to: str, otp: str, engineer_name: str, client_name: str, date_str: str
    ) -> DeliveryAttempt:
        message = (
            f"Worker visit created by {engineer_name} for {client_name} on {date_str}. "
            f"Verification OTP: {otp}. - {self.config.COMPANY_NAME}"
        )
        return self.send(to, message)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def send_appointment_notification(
        self, to: str, engineer_name: str, date_str: str, time_str: str, location: str
    ) -> DeliveryAttempt:
        message = (
            f"Appointment scheduled with {engineer_name} on {date_str} at {time_str}. Location: {location}. "
            f"You will receive an OTP after the visit for verification. - {self.config.COMPANY_NAME}"
        )
        return self.send(to, message)

    def send_engineer_notification(
        self, to: str, client_name: str, date_str: str, time_str: str, location: str, purpose: str
    ) -> DeliveryAttempt:
        message = (
            f"New appointment: Client {client_name}, Date: {date_str} {time_str}, Location: {location}, "
            f"Purpose: {purpose}. Check dashboard for details. - {self.config.COMPANY_NAME}"
        )
        return self.send(to, message)

    # ------------------------------------------------------------------
    # Widget verification, diagnostics
    # ------------------------------------------------------------------

    def verify_widget_access_token(self, access_token: str) -> WidgetVerification:
        """Ask MSG91 whether the OTP widget session behind `access_token` was verified"""
        try:
            response = requests.post(
                self.config.MSG91_WIDGET_VERIFY_URL,
                json={"authkey": self.auth_key, "access-token": access_token},
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.config.SMS_TIMEOUT_SECONDS,
            )
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            error = self._extract_error(e)
            logger.error(f"MSG91 widget verification failed: {error}")
            return WidgetVerification(success=False, message=error)

        if data.get("type") == "success":
            logger.info("MSG91 widget token verified")
            return WidgetVerification(success=True, message=data.get("message") or "OTP verified")

        logger.warning(f"MSG91 widget verification rejected: {data}")
        return WidgetVerification(success=False, message=data.get("message") or "Invalid OTP")

    def last_failure_reason(self, phone: str) -> Optional[str]:
        """Error of the most recent failed delivery to this number (matched on its last 10 digits)"""
        digits = last_digits(phone)
        if not digits:
            return None
        try:
            statement = select(SMSLog).where(
                SMSLog.status == SMS_STATUS_FAILED,
                SMSLog.phone.contains(digits),
            ).order_by(SMSLog.sent_at.desc())
            log = self.session.exec(statement).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch SMS logs: {e}")
            return None
        return log.error if log else None

    def check_balance(self) -> Optional[Any]:
        """Remaining MSG91 credit, useful for monitoring"""
        try:
            response = requests.get(
                f"{self.base_url}/balance",
                headers={"authkey": self.auth_key or ""},
                timeout=self.config.SMS_TIMEOUT_SECONDS,
            )
            return response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Failed to check MSG91 balance: {self._extract_error(e)}")
            return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _post(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = requests.post(
            url,
            json=payload,
            headers={
                "authkey": self.auth_key or "",
                "content-type": "application/json",
            },
            timeout=self.config.SMS_TIMEOUT_SECONDS,
        )
        logger.debug(f"MSG91 response status: {response.status_code}")
        # MSG91 reports failures in the body; the "type" field is the only signal we trust
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response from MSG91: {data!r}")
        return data

    @staticmethod
    def _extract_error(error: Exception) -> str:
        response = getattr(error, "response", None)
        if response is not None:
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    return str(body["message"])
            except ValueError:
                if response.text:
                    return response.text
        return str(error) or UNKNOWN_ERROR

    def _record(
        self,
        phone: str,
        message: str,
        channel: str,
        success: bool,
        provider_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DeliveryAttempt:
        log = SMSLog(
            phone=phone,
            message=message,
            status=SMS_STATUS_SENT if success else SMS_STATUS_FAILED,
            provider=self.provider,
            provider_id=provider_id,
            error=error,
        )
        try:
            self.session.add(log)
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to log SMS attempt for {phone}: {e}")
            self.session.rollback()
        return DeliveryAttempt(
            success=success,
            phone=phone,
            channel=channel,
            provider_id=provider_id,
            error=error,
        )
