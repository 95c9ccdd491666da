"""
Discharge Portal - Authentication Request/Response Schemas

Pydantic models for API request validation and response serialization.
Separates API contracts from database models. JSON field names are
camelCase to match the portal frontends.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel

from discharge_backend.tenants.models import Branding, TenantConfig


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class LoginRequest(CamelModel):
    """Request body for POST /auth/login."""
    tenant_id: str = Field(..., min_length=1, max_length=128, description="Tenant the user belongs to")
    username: str = Field(..., min_length=1, max_length=256)
    password: str = Field(..., min_length=1, max_length=1024)

    @validator("tenant_id", "username")
    def strip_whitespace(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class LoginUser(CamelModel):
    id: str
    tenant_id: Optional[str]
    username: str
    name: str
    role: str
    linked_patient_id: Optional[str] = None


class LoginTenant(CamelModel):
    id: str
    name: str
    branding: Branding


class LoginResponse(CamelModel):
    """Response body for successful login."""
    success: bool = True
    token: str = Field(..., description="Session token (JWT)")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Seconds until the token expires")
    user: LoginUser
    tenant: LoginTenant


class PrincipalResponse(CamelModel):
    """Response body for GET /auth/me."""
    kind: Literal["user", "service"]
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    linked_patient_id: Optional[str] = None
    email: Optional[str] = None
    expires_at: Optional[datetime] = None


class UnlockResponse(CamelModel):
    """Response body for POST /admin/users/{user_id}/unlock."""
    id: str
    tenant_id: Optional[str]
    username: str
    is_locked: bool
    failed_login_attempts: int


class TenantListResponse(CamelModel):
    tenants: List[TenantConfig]
    total: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str
    error_code: Optional[str] = None
    request_id: Optional[str] = None
