"""
Discharge Portal - Security Dependencies

FastAPI dependencies wiring the authorization pipeline into routes.

Usage:
    @router.get("/tenant/config")
    async def read_config(access: AccessContext = Depends(RequireAccess("tenant:read_config"))):
        ...

    @router.get("/system/tenants")
    async def list_all(access: AccessContext = Depends(
        RequireAccess("system:list_tenants", tenant_scoped=False)
    )):
        ...

Security:
- Stage A (authenticate) is a sub-dependency of RequireAccess, so it always
  resolves before the role (B) and tenant (C) checks run
- Every rejection is an AuthError rendered by the app's exception handler
"""

from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from discharge_backend.auth import pipeline
from discharge_backend.auth.pipeline import AccessContext, Principal, ServicePrincipal
from discharge_backend.logging import bind_request_context


# HTTP Bearer scheme; missing credentials are reported as AuthenticationRequired
security = HTTPBearer(auto_error=False)


async def authenticate_request(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Stage A. Resolve the caller from the Authorization header.

    Delegated identity verification may call the identity provider, so
    the whole stage runs in a worker thread.

    Raises:
        AuthenticationRequired: Missing token or no trust path accepts it
    """
    token = credentials.credentials if credentials else None

    principal = await run_in_threadpool(
        pipeline.authenticate,
        token,
        request.app.state.token_service,
        request.app.state.delegated_verifier,
    )

    request.state.principal = principal
    if isinstance(principal, ServicePrincipal):
        bind_request_context(principal_kind="service")
    else:
        bind_request_context(principal_kind="user", user_id=principal.user_id)
    return principal


class RequireAccess:
    """
    Composed dependency: authenticate -> authorize role -> tenant isolation.

    Args:
        operation: Operation name looked up in the access policy
        tenant_scoped: Apply stage C (tenant isolation)
    """

    def __init__(self, operation: str, tenant_scoped: bool = True):
        self.operation = operation
        self.tenant_scoped = tenant_scoped

    async def __call__(
        self,
        request: Request,
        principal: Principal = Depends(authenticate_request),
        x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-ID"),
    ) -> AccessContext:
        policy = request.app.state.access_policy
        pipeline.authorize_role(principal, policy.allowed_roles(self.operation))

        if self.tenant_scoped:
            pipeline.enforce_tenant_isolation(principal, x_tenant_id)

        tenant_id = x_tenant_id or principal.tenant_id
        if tenant_id:
            bind_request_context(tenant_id=tenant_id)
        return AccessContext(principal=principal, tenant_id=tenant_id)


def require_patient_access(operation: str):
    """
    RequireAccess plus patient scoping on the ``patient_id`` path parameter.

    Usage:
        @router.get("/patients/{patient_id}/discharge-summaries")
        async def summaries(access = Depends(require_patient_access("patients:read_discharge_summaries"))):
            ...
    """
    access_dependency = RequireAccess(operation)

    async def dependency(
        patient_id: str,
        access: AccessContext = Depends(access_dependency),
    ) -> AccessContext:
        pipeline.enforce_patient_access(access.principal, patient_id)
        return access

    return dependency
