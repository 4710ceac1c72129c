# Worker visit schemas
from .worker_visit import (
    WorkerVisitCreateRequest,
    WorkerVisitResponse,
    VisitOTPDelivery,
    WorkerVisitOTPData,
    WorkerVisitOTPResponse,
    WorkerCountSubmitRequest,
    WorkerCountWidgetSubmitRequest,
    WorkerVisitEnvelope,
    WorkerVisitListResponse
)

__all__ = [
    "WorkerVisitCreateRequest",
    "WorkerVisitResponse",
    "VisitOTPDelivery",
    "WorkerVisitOTPData",
    "WorkerVisitOTPResponse",
    "WorkerCountSubmitRequest",
    "WorkerCountWidgetSubmitRequest",
    "WorkerVisitEnvelope",
    "WorkerVisitListResponse"
]
