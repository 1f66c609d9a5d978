"""Authentication & access-request API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlmodel import Session

from gateway.api.deps import get_current_user, limit_auth
from gateway.database import get_session
from gateway.schemas.auth import (
    AccessRequestCreate,
    AccessRequestCreateResponse,
    Identity,
    LoginRequest,
    LoginResponse,
    ValidateResponse,
)
from gateway.services import auth_service
from gateway.services.auth_service import AuthError
from gateway.services.monitoring import metrics

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse, dependencies=[Depends(limit_auth)])
def login(request: LoginRequest, request_obj: Request, session: Session = Depends(get_session)):
    """Exchange email + password for an access token."""
    client_ip = request_obj.client.host if request_obj.client else ""
    try:
        result = auth_service.login(request.email, request.password, session)
    except AuthError as e:
        metrics.record_auth_event("login_failed", email=request.email, ip=client_ip)
        raise HTTPException(status_code=e.status_code, detail=e.message)
    metrics.record_auth_event("login", email=request.email, ip=client_ip)
    return LoginResponse(**result)


@router.post(
    "/request-access",
    response_model=AccessRequestCreateResponse,
    dependencies=[Depends(limit_auth)],
)
def request_access(
    request: AccessRequestCreate,
    request_obj: Request,
    session: Session = Depends(get_session),
):
    """Submit an access request for admin approval."""
    try:
        access_request = auth_service.request_access(
            name=request.name,
            email=request.email,
            reason=request.reason,
            organization=request.organization,
            phone=request.phone,
            ip_address=request_obj.client.host if request_obj.client else None,
            user_agent=request_obj.headers.get("user-agent"),
            session=session,
        )
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    metrics.record_auth_event("access_request", name=request.name, email=request.email)
    return AccessRequestCreateResponse(
        message="Access request submitted successfully",
        request_id=access_request.id,
    )


@router.get("/access-status")
def access_status(email: str = Query(default=""), session: Session = Depends(get_session)):
    """Check the status of an access request by email."""
    try:
        result = auth_service.access_status(email, session)
    except AuthError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return {"success": True, **result}


@router.get("/validate", response_model=ValidateResponse)
def validate(user: Identity = Depends(get_current_user)):
    """Echo the identity carried by the caller's token."""
    return ValidateResponse(user=user)
