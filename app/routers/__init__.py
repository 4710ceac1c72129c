# Routers package
from . import appointment_router
from . import worker_visit_router
from . import sms_router

__all__ = [
    "appointment_router",
    "worker_visit_router",
    "sms_router"
]
