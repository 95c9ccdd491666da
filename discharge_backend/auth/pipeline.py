"""
Discharge Portal - Request Authorization Pipeline

Three stages applied to every protected request, always in this order:

    A. authenticate             bearer token -> Principal
    B. authorize_role           principal role in the operation's allow-list
    C. enforce_tenant_isolation principal tenant == X-Tenant-ID

Each stage raises an AuthError subclass on rejection, so the first failing
stage short-circuits the rest. Service principals (delegated identity)
pass B and C; system admins pass C.

The stages are plain functions so endpoints can compose any subset; the
FastAPI wiring lives in discharge_backend.auth.dependencies.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Union

import structlog

from discharge_backend.auth.delegated import DelegatedIdentityVerifier
from discharge_backend.auth.errors import (
    AuthenticationRequired,
    Forbidden,
    MissingTenantHeader,
    PatientAccessDenied,
    TenantAccessDenied,
)
from discharge_backend.auth.models import Role
from discharge_backend.auth.tokens import SessionClaims, TokenService


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UserPrincipal:
    """Human caller resolved from a session token."""
    claims: SessionClaims

    kind = "user"

    @property
    def role(self) -> Role:
        return self.claims.role

    @property
    def tenant_id(self) -> Optional[str]:
        return self.claims.tenant_id

    @property
    def user_id(self) -> str:
        return self.claims.user_id

    @property
    def username(self) -> str:
        return self.claims.username


@dataclass(frozen=True)
class ServicePrincipal:
    """Trusted infrastructure caller resolved from a delegated identity token."""
    email: str

    kind = "service"
    role = None
    tenant_id = None


Principal = Union[UserPrincipal, ServicePrincipal]


@dataclass(frozen=True)
class AccessContext:
    """What a protected handler receives: who is calling, for which tenant."""
    principal: Principal
    tenant_id: Optional[str]

    @property
    def is_service(self) -> bool:
        return isinstance(self.principal, ServicePrincipal)


# =============================================================================
# STAGE A - AUTHENTICATE
# =============================================================================

def authenticate_session_token(token: Optional[str], tokens: TokenService) -> Optional[UserPrincipal]:
    """Session-token trust path only."""
    if not token:
        return None
    claims = tokens.verify(token)
    return UserPrincipal(claims) if claims is not None else None


def authenticate_delegated_token(
    token: Optional[str], verifier: Optional[DelegatedIdentityVerifier]
) -> Optional[ServicePrincipal]:
    """Delegated-identity trust path only. Blocking."""
    if not token or verifier is None:
        return None
    claims = verifier.verify(token)
    return ServicePrincipal(email=claims.email) if claims is not None else None


def authenticate(
    token: Optional[str],
    tokens: TokenService,
    verifier: Optional[DelegatedIdentityVerifier] = None,
) -> Principal:
    """
    Resolve the caller from a bearer token, session token first.

    Raises:
        AuthenticationRequired: No token, or neither trust path accepts it
    """
    if not token:
        raise AuthenticationRequired()

    principal = authenticate_session_token(token, tokens)
    if principal is None:
        principal = authenticate_delegated_token(token, verifier)

    if principal is None:
        logger.info("authentication_failed")
        raise AuthenticationRequired()
    return principal


# =============================================================================
# STAGE B - AUTHORIZE BY ROLE
# =============================================================================

def authorize_role(principal: Principal, allowed_roles: Iterable[Role]) -> None:
    """
    Raises:
        Forbidden: Human principal whose role is not allowed
    """
    if isinstance(principal, ServicePrincipal):
        return

    allowed = frozenset(allowed_roles)
    if principal.role not in allowed:
        logger.warning(
            "role_denied",
            user_id=principal.user_id,
            role=principal.role.value,
            allowed=sorted(r.value for r in allowed),
        )
        raise Forbidden()


# =============================================================================
# STAGE C - TENANT ISOLATION
# =============================================================================

def enforce_tenant_isolation(principal: Principal, tenant_header: Optional[str]) -> None:
    """
    Raises:
        MissingTenantHeader: No X-Tenant-ID on the request
        TenantAccessDenied: X-Tenant-ID differs from the caller's tenant
    """
    if isinstance(principal, ServicePrincipal):
        return
    if principal.role == Role.SYSTEM_ADMIN:
        return

    if not tenant_header:
        raise MissingTenantHeader()

    if principal.tenant_id != tenant_header:
        logger.warning(
            "tenant_access_denied",
            user_id=principal.user_id,
            user_tenant=principal.tenant_id,
            requested_tenant=tenant_header,
        )
        raise TenantAccessDenied()


# =============================================================================
# PATIENT RESOURCE SCOPING
# =============================================================================

def enforce_patient_access(principal: Principal, patient_id: Optional[str]) -> None:
    """
    Patients may only address their own linked patient record.

    Other roles and service principals are scoped by tenant isolation
    alone. A patient account without a linked patient id is not
    restricted here; the handler must check ownership itself.

    Raises:
        PatientAccessDenied: Patient addressing another patient's data
    """
    if isinstance(principal, ServicePrincipal) or principal.role != Role.PATIENT:
        return
    if not patient_id or not principal.claims.linked_patient_id:
        return

    if principal.claims.linked_patient_id != patient_id:
        logger.warning(
            "patient_access_denied",
            user_id=principal.user_id,
            requested_patient=patient_id,
        )
        raise PatientAccessDenied()
