"""User and AccessRequest models."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: f"usr_{secrets.token_hex(4)}", primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    password_hash: str
    role: str = Field(default="operator")  # 'admin' | 'operator'
    organization: Optional[str] = None
    phone: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AccessRequest(SQLModel, table=True):
    __tablename__ = "access_requests"

    id: str = Field(default_factory=lambda: f"req_{secrets.token_hex(4)}", primary_key=True)
    name: str
    email: str = Field(index=True)
    reason: str
    organization: Optional[str] = None
    phone: Optional[str] = None
    status: str = Field(default="pending")  # 'pending' | 'approved' | 'rejected'
    rejection_reason: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None
