# Database models
from .users.user import User, UserRole
from .clients.client import Client
from .appointments.appointment import Appointment, AppointmentStatus, TERMINAL_APPOINTMENT_STATUSES
from .visits.worker_visit import WorkerVisit, VisitStatus
from .messaging.sms_log import SMSLog, SMS_STATUS_SENT, SMS_STATUS_FAILED
from .system.setting import Setting, ADMIN_PHONE_KEY

__all__ = [
    "User",
    "UserRole",
    "Client",
    "Appointment",
    "AppointmentStatus",
    "TERMINAL_APPOINTMENT_STATUSES",
    "WorkerVisit",
    "VisitStatus",
    "SMSLog",
    "SMS_STATUS_SENT",
    "SMS_STATUS_FAILED",
    "Setting",
    "ADMIN_PHONE_KEY",
]
