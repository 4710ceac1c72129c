# app/routers/worker_visit_router.py
from typing import Optional

from fastapi import APIRouter, Depends, status
import logging

from app.db.models import UserRole
from app.routers.deps import get_current_actor, get_worker_visit_service, require_roles
from app.services.auth.identity import Actor
from app.services.visits.worker_visit_service import VisitOTPDispatch, WorkerVisitService
from app.schemas.common.common import WidgetTokenData, WidgetTokenResponse
from app.schemas.visits.worker_visit import (
    VisitOTPDelivery,
    WorkerCountSubmitRequest,
    WorkerCountWidgetSubmitRequest,
    WorkerVisitCreateRequest,
    WorkerVisitEnvelope,
    WorkerVisitListResponse,
    WorkerVisitOTPData,
    WorkerVisitOTPResponse,
    WorkerVisitResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=WorkerVisitOTPResponse, status_code=status.HTTP_201_CREATED)
def create_worker_visit(
    request: WorkerVisitCreateRequest,
    actor: Actor = Depends(get_current_actor),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    """
    Record a worker visit and send its OTP to the client and the admin.

    The visit is created even when the client SMS fails; `client_otp_sent`
    is false in that case and the OTP has to be resent.
    """
    dispatch = service.create_visit(
        actor,
        client_id=request.client_id,
        visit_date=request.visit_date,
        site_address=request.site_address,
        engineer_id=request.engineer_id,
    )
    if dispatch.client_sent:
        message = "Worker visit created and OTP sent to client"
    else:
        message = "Worker visit created but OTP could not be sent to client. Please resend."
    return _visit_otp(message, dispatch)


@router.get("/pending", response_model=WorkerVisitListResponse)
def get_pending_visits(
    actor: Actor = Depends(get_current_actor),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    visits = service.get_pending_visits(actor)
    return WorkerVisitListResponse(
        success=True,
        message=f"Found {len(visits)} pending visits",
        data=[WorkerVisitResponse.model_validate(v) for v in visits],
    )


@router.get("/completed", response_model=WorkerVisitListResponse)
def get_completed_visits(
    client_id: Optional[str] = None,
    actor: Actor = Depends(get_current_actor),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    visits = service.get_completed_visits(actor, client_id=client_id)
    return WorkerVisitListResponse(
        success=True,
        message=f"Found {len(visits)} completed visits",
        data=[WorkerVisitResponse.model_validate(v) for v in visits],
    )


@router.post("/{visit_id}/resend-otp", response_model=WorkerVisitOTPResponse)
def resend_worker_visit_otp(
    visit_id: str,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    dispatch = service.resend_otp(visit_id, actor)
    return _visit_otp("OTP resent successfully", dispatch)


@router.post("/{visit_id}/submit-count", response_model=WorkerVisitEnvelope)
def submit_worker_count(
    visit_id: str,
    request: WorkerCountSubmitRequest,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    visit = service.submit_worker_count(visit_id, actor, request.otp, request.worker_count, request.remarks)
    return WorkerVisitEnvelope(
        success=True,
        message="Worker count submitted successfully",
        data=WorkerVisitResponse.model_validate(visit),
    )


@router.get("/{visit_id}/otp-widget-token", response_model=WidgetTokenResponse)
def get_otp_widget_token(
    visit_id: str,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    grant = service.issue_widget_token(visit_id, actor)
    return WidgetTokenResponse(
        success=True,
        message="Widget token generated",
        data=WidgetTokenData.model_validate(grant),
    )


@router.post("/{visit_id}/submit-count-widget", response_model=WorkerVisitEnvelope)
def submit_worker_count_widget(
    visit_id: str,
    request: WorkerCountWidgetSubmitRequest,
    actor: Actor = Depends(require_roles(UserRole.ENGINEER)),
    service: WorkerVisitService = Depends(get_worker_visit_service),
):
    visit = service.submit_worker_count_with_widget(
        visit_id, actor, request.access_token, request.worker_count, request.remarks
    )
    return WorkerVisitEnvelope(
        success=True,
        message="Worker count submitted successfully",
        data=WorkerVisitResponse.model_validate(visit),
    )


def _visit_otp(message: str, dispatch: VisitOTPDispatch) -> WorkerVisitOTPResponse:
    return WorkerVisitOTPResponse(
        success=True,
        message=message,
        data=WorkerVisitOTPData(
            visit=WorkerVisitResponse.model_validate(dispatch.visit),
            delivery=VisitOTPDelivery(
                client_phone=dispatch.client_phone,
                client_otp_sent=dispatch.client_sent,
                admin_phone=dispatch.admin_phone,
                admin_otp_sent=dispatch.admin_sent,
            ),
        ),
    )
