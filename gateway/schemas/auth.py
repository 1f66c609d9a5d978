"""Auth and access-request schemas."""

from typing import Optional

from pydantic import BaseModel


class Identity(BaseModel):
    """Authenticated caller, as carried by the access token."""
    id: str
    email: str
    name: str
    role: str


# --- Login ---

class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class LoginResponse(BaseModel):
    success: bool = True
    token: str
    user: Identity


class ValidateResponse(BaseModel):
    success: bool = True
    user: Identity


# --- Access Requests ---

class AccessRequestCreate(BaseModel):
    name: str = ""
    email: str = ""
    reason: str = ""
    organization: Optional[str] = None
    phone: Optional[str] = None


class AccessRequestCreateResponse(BaseModel):
    success: bool = True
    message: str
    request_id: str


class AccessRequestSummary(BaseModel):
    id: str
    name: str
    email: str
    reason: str
    organization: Optional[str]
    status: str
    created_at: str
    ip_address: Optional[str]


class AccessRequestListResponse(BaseModel):
    success: bool = True
    requests: list[AccessRequestSummary]


class ApproveRequest(BaseModel):
    role: str = "operator"


class ApproveResponse(BaseModel):
    success: bool = True
    message: str
    user: Identity
    initial_password: str


class RejectRequest(BaseModel):
    reason: Optional[str] = None
