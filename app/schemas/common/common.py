# app/schemas/common/common.py
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Envelope rendered for every ServiceError"""
    success: bool = False
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class WidgetTokenData(BaseModel):
    token: str
    phone: str
    expires_in: int = Field(..., description="Token lifetime in seconds")

    model_config = {"from_attributes": True}


class WidgetTokenResponse(BaseModel):
    success: bool
    message: str
    data: Optional[WidgetTokenData] = None


class SMSBalanceResponse(BaseModel):
    success: bool
    message: str
    # Passed through from MSG91 as-is
    data: Optional[Any] = None
