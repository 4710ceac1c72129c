# app/routers/sms_router.py
from fastapi import APIRouter, Depends, HTTPException

from app.db.models import UserRole
from app.routers.deps import get_sms_service, require_roles
from app.services.auth.identity import Actor
from app.services.sms.sms_service import SMSService
from app.schemas.common.common import SMSBalanceResponse

router = APIRouter()


@router.get("/balance", response_model=SMSBalanceResponse)
def get_sms_balance(
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    sms_service: SMSService = Depends(get_sms_service),
):
    """Remaining MSG91 credit"""
    balance = sms_service.check_balance()
    if balance is None:
        raise HTTPException(status_code=502, detail="Could not reach SMS provider")
    return SMSBalanceResponse(success=True, message="SMS balance retrieved", data=balance)
