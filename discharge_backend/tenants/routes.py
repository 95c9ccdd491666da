"""
Discharge Portal - Tenant Routes

- GET /tenant/config     - Configuration of the X-Tenant-ID tenant
- GET /system/tenants    - Every known tenant (system admin only)
"""

from fastapi import APIRouter, Depends, Request

from discharge_backend.auth.dependencies import RequireAccess
from discharge_backend.auth.errors import MissingTenantHeader
from discharge_backend.auth.pipeline import AccessContext
from discharge_backend.auth.schemas import ErrorResponse, TenantListResponse
from discharge_backend.tenants.directory import TenantDirectory
from discharge_backend.tenants.models import TenantConfig


router = APIRouter(tags=["tenants"])


@router.get(
    "/tenant/config",
    response_model=TenantConfig,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
    summary="Branding and feature flags of the current tenant",
)
async def read_tenant_config(
    request: Request,
    access: AccessContext = Depends(RequireAccess("tenant:read_config")),
):
    if not access.tenant_id:
        # Service principals and system admins still have to name a tenant
        raise MissingTenantHeader()

    tenants: TenantDirectory = request.app.state.tenants
    return tenants.get_tenant_config_with_defaults(access.tenant_id)


@router.get(
    "/system/tenants",
    response_model=TenantListResponse,
    responses={401: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
    summary="List all tenants (system admin)",
)
async def list_tenants(
    request: Request,
    access: AccessContext = Depends(RequireAccess("system:list_tenants", tenant_scoped=False)),
):
    tenants: TenantDirectory = request.app.state.tenants
    configs = tenants.list_tenants()
    return TenantListResponse(tenants=configs, total=len(configs))
