"""
Discharge Portal - Credential Store Models

SQLModel-based user records for password login.
Uses PostgreSQL for production, SQLite for local development and tests.

Security:
- Passwords stored as bcrypt hashes only
- Lock state and failed-attempt counters live on the record itself
- All timestamps in UTC
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """
    Closed set of portal roles.

    SYSTEM_ADMIN is the only role without a tenant and the only human
    role exempt from tenant isolation.
    """
    PATIENT = "patient"
    CLINICIAN = "clinician"
    EXPERT = "expert"
    TENANT_ADMIN = "tenant_admin"
    SYSTEM_ADMIN = "system_admin"


class UserRecord(SQLModel, table=True):
    """
    User account as held by the credential store.

    Attributes:
        id: Opaque unique identifier
        tenant_id: Owning tenant; None only for system admins
        username: Login name, unique within a tenant
        name: Display name
        role: Portal role
        linked_patient_id: Patient this account may see (patient role)
        password_hash: bcrypt hash (never store plaintext)
        is_active: Disabled accounts cannot log in
        is_locked: Set after too many failed logins
        failed_login_attempts: Consecutive failures since the last success
    """
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_users_tenant_username"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: Optional[str] = Field(default=None, index=True)
    username: str = Field(index=True)
    name: str
    email: Optional[str] = None
    role: Role = Field(default=Role.CLINICIAN)
    linked_patient_id: Optional[str] = None
    password_hash: str

    is_active: bool = True
    is_locked: bool = False
    locked_at: Optional[datetime] = None
    locked_reason: Optional[str] = None
    failed_login_attempts: int = 0
    last_failed_login_at: Optional[datetime] = None
    last_successful_login_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
