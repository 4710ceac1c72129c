# app/routers/deps.py
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from app.db.models import UserRole
from app.db.session import get_session
from app.services.appointments.appointment_service import AppointmentService
from app.services.auth.identity import Actor, actor_from_claims, decode_access_token
from app.services.sms.sms_service import SMSService
from app.services.visits.worker_visit_service import WorkerVisitService

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS_TOKEN_COOKIE = "accessToken"


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Resolve the caller from the bearer token (or the access token cookie set by the web app)"""
    token = credentials.credentials if credentials else request.cookies.get(ACCESS_TOKEN_COOKIE)
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not token:
        raise credentials_exc

    claims = decode_access_token(token)
    if not claims:
        raise credentials_exc
    actor = actor_from_claims(claims)
    if not actor:
        raise credentials_exc
    return actor


def require_roles(*allowed_roles: UserRole) -> Callable[..., Actor]:
    """Dependency factory: the current actor, provided it holds one of `allowed_roles`"""
    allowed = set(allowed_roles)

    def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not enough permissions",
            )
        return actor

    return _dep


def get_sms_service(session: Session = Depends(get_session)) -> SMSService:
    """Dependency to get the SMS gateway"""
    return SMSService(session)


def get_appointment_service(
    session: Session = Depends(get_session),
    sms_service: SMSService = Depends(get_sms_service),
) -> AppointmentService:
    return AppointmentService(session, sms_service)


def get_worker_visit_service(
    session: Session = Depends(get_session),
    sms_service: SMSService = Depends(get_sms_service),
) -> WorkerVisitService:
    return WorkerVisitService(session, sms_service)
