"""
Discharge Portal - Authentication Routes

API endpoints for authentication:
- POST /auth/login                      - Password login, issues session token
- GET  /auth/me                         - Resolved caller identity
- POST /admin/users/{user_id}/unlock    - Clear a lockout (tenant/system admin)

Session tokens are stateless: there is no logout or refresh endpoint.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Request, status

from discharge_backend.auth.authenticator import PasswordAuthenticator
from discharge_backend.auth.dependencies import RequireAccess
from discharge_backend.auth.errors import UserNotFound
from discharge_backend.auth.models import Role
from discharge_backend.auth.pipeline import AccessContext, ServicePrincipal
from discharge_backend.auth.repository import UserRepository
from discharge_backend.auth.schemas import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LoginTenant,
    LoginUser,
    PrincipalResponse,
    UnlockResponse,
)


logger = structlog.get_logger(__name__)

router = APIRouter(tags=["authentication"])


@router.post(
    "/auth/login",
    response_model=LoginResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        423: {"model": ErrorResponse},
    },
    summary="Authenticate with tenant, username and password",
)
async def login(request: Request, credentials: LoginRequest):
    """
    Password login.

    Returns a 24h session token, the user summary and tenant branding.

    Raises:
        401: Invalid credentials
        403: Account disabled
        404: Tenant not found
        423: Account locked
    """
    authenticator: PasswordAuthenticator = request.app.state.authenticator
    result = authenticator.login(
        tenant_id=credentials.tenant_id,
        username=credentials.username,
        password=credentials.password,
    )

    user = result.user
    return LoginResponse(
        token=result.token,
        expires_in=result.expires_in,
        user=LoginUser(
            id=user.id,
            tenant_id=result.tenant_id,
            username=user.username,
            name=user.name,
            role=user.role.value,
            linked_patient_id=user.linked_patient_id,
        ),
        tenant=LoginTenant(
            id=result.tenant.id,
            name=result.tenant.name,
            branding=result.tenant.branding,
        ),
    )


@router.get(
    "/auth/me",
    response_model=PrincipalResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Get the authenticated caller",
)
async def get_me(
    access: AccessContext = Depends(RequireAccess("auth:me", tenant_scoped=False)),
):
    principal = access.principal
    if isinstance(principal, ServicePrincipal):
        return PrincipalResponse(kind="service", email=principal.email)

    claims = principal.claims
    return PrincipalResponse(
        kind="user",
        user_id=claims.user_id,
        tenant_id=claims.tenant_id,
        username=claims.username,
        name=claims.name,
        role=claims.role.value,
        linked_patient_id=claims.linked_patient_id,
        expires_at=datetime.fromtimestamp(claims.exp, tz=timezone.utc),
    )


@router.post(
    "/admin/users/{user_id}/unlock",
    response_model=UnlockResponse,
    status_code=status.HTTP_200_OK,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Unlock a user account (tenant or system admin)",
)
async def unlock_user(
    request: Request,
    user_id: str,
    access: AccessContext = Depends(RequireAccess("users:unlock")),
):
    """
    Clear the lock flag and failed-attempt counter of a user.

    Tenant admins only reach users of their own tenant; a user elsewhere
    is reported as not found.
    """
    users: UserRepository = request.app.state.users

    target = users.get(user_id)
    if target is None:
        raise UserNotFound()

    principal = access.principal
    if not access.is_service and principal.role != Role.SYSTEM_ADMIN:
        if target.tenant_id != access.tenant_id:
            raise UserNotFound()

    actor = principal.email if access.is_service else principal.user_id
    updated = users.unlock(user_id, actor=actor)
    if updated is None:
        raise UserNotFound()

    logger.info(
        "user_unlocked",
        target_user_id=updated.id,
        target_tenant_id=updated.tenant_id,
        actor=actor,
    )
    return UnlockResponse(
        id=updated.id,
        tenant_id=updated.tenant_id,
        username=updated.username,
        is_locked=updated.is_locked,
        failed_login_attempts=updated.failed_login_attempts,
    )
