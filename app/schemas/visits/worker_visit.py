# app/schemas/visits/worker_visit.py
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime

from app.db.models import VisitStatus


class WorkerVisitCreateRequest(BaseModel):
    """Request schema for recording a worker visit"""
    client_id: str
    visit_date: datetime
    site_address: Optional[str] = None
    engineer_id: Optional[str] = Field(None, description="Required when an admin creates the visit")


class WorkerVisitResponse(BaseModel):
    id: str
    engineer_id: str
    client_id: str
    visit_date: datetime
    site_address: Optional[str] = None
    status: VisitStatus
    otp_sent_at: Optional[datetime] = None
    otp_expires_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    worker_count: Optional[int] = None
    remarks: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VisitOTPDelivery(BaseModel):
    """Per-recipient outcome of a worker-visit OTP send"""
    client_phone: str
    client_otp_sent: bool
    admin_phone: Optional[str] = None
    admin_otp_sent: Optional[bool] = None


class WorkerVisitOTPData(BaseModel):
    visit: WorkerVisitResponse
    delivery: VisitOTPDelivery


class WorkerVisitOTPResponse(BaseModel):
    success: bool
    message: str
    data: Optional[WorkerVisitOTPData] = None


class WorkerCountSubmitRequest(BaseModel):
    otp: Optional[str] = None
    worker_count: Optional[int] = Field(None, description="Number of workers on site, must be positive")
    remarks: Optional[str] = None


class WorkerCountWidgetSubmitRequest(BaseModel):
    access_token: Optional[str] = Field(None, validation_alias=AliasChoices("access_token", "accessToken"))
    worker_count: Optional[int] = None
    remarks: Optional[str] = None


class WorkerVisitEnvelope(BaseModel):
    success: bool
    message: str
    data: Optional[WorkerVisitResponse] = None


class WorkerVisitListResponse(BaseModel):
    success: bool
    message: str
    data: List[WorkerVisitResponse] = Field(default_factory=list)
