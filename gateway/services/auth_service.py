"""Authentication & access-approval business logic.

Users log in with email + password. New people submit an access request
which an admin approves (creating the user) or rejects.
"""

from datetime import datetime, timezone

from sqlmodel import Session, col, select

from gateway.models.user import AccessRequest, User
from gateway.utils.security import (
    create_access_token,
    generate_password,
    hash_password,
    verify_password,
)

STATUS_MESSAGES = {
    "pending": "Your access request is pending approval",
    "approved": "Your access has been approved. You can now log in.",
    "rejected": "Your access request has been rejected",
}


class AuthError(ValueError):
    """Raised with an HTTP status code the route should answer with."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def public_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
    }


def login(email: str, password: str, session: Session) -> dict:
    """Check credentials and issue an access token."""
    if not email or not password:
        raise AuthError(400, "Email and password are required")

    user = session.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthError(401, "Invalid credentials")

    if not user.approved_at:
        raise AuthError(403, "Access not approved yet")

    token = create_access_token(user.id, user.email, user.name, user.role)
    return {"token": token, "user": public_user(user)}


def request_access(
    name: str,
    email: str,
    reason: str,
    session: Session,
    organization: str | None = None,
    phone: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AccessRequest:
    if not name or not email or not reason:
        raise AuthError(400, "Name, email, and reason are required")

    request = AccessRequest(
        name=name,
        email=email,
        reason=reason,
        organization=organization,
        phone=phone,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(request)
    session.commit()
    session.refresh(request)
    return request


def access_status(email: str, session: Session) -> dict:
    """Latest access request status for an email."""
    if not email:
        raise AuthError(400, "Email is required")

    request = session.exec(
        select(AccessRequest)
        .where(AccessRequest.email == email)
        .order_by(col(AccessRequest.created_at).desc())
    ).first()
    if not request:
        raise AuthError(404, "No access request found for this email")

    return {
        "status": request.status,
        "message": STATUS_MESSAGES.get(request.status, "Unknown status"),
        "request": {
            "id": request.id,
            "status": request.status,
            "created_at": request.created_at.isoformat(),
        },
    }


def list_requests(session: Session) -> list[AccessRequest]:
    return list(session.exec(select(AccessRequest).order_by(col(AccessRequest.created_at))).all())


def _pending_request(request_id: str, session: Session) -> AccessRequest:
    request = session.get(AccessRequest, request_id)
    if not request:
        raise AuthError(404, "Access request not found")
    if request.status != "pending":
        raise AuthError(400, "Request already processed")
    return request


def approve_request(request_id: str, role: str, session: Session) -> dict:
    """Approve a pending request: creates (or re-approves) the user account.

    The generated password is returned once and never stored in clear.
    """
    request = _pending_request(request_id, session)
    now = datetime.now(timezone.utc)
    password = generate_password()

    user = session.exec(select(User).where(User.email == request.email)).first()
    if user is None:
        user = User(email=request.email, name=request.name, password_hash="")
    user.name = request.name
    user.role = role
    user.organization = request.organization
    user.phone = request.phone
    user.password_hash = hash_password(password)
    user.approved_at = now
    session.add(user)

    request.status = "approved"
    request.processed_at = now
    session.add(request)
    session.commit()
    session.refresh(user)

    return {"user": public_user(user), "initial_password": password}


def reject_request(request_id: str, reason: str | None, session: Session) -> AccessRequest:
    request = _pending_request(request_id, session)
    request.status = "rejected"
    request.rejection_reason = reason or "No reason provided"
    request.processed_at = datetime.now(timezone.utc)
    session.add(request)
    session.commit()
    session.refresh(request)
    return request
