"""
Discharge Portal - Authentication Errors

Caller-facing rejection taxonomy for login and the request pipeline.
Each error carries a fixed message; nothing about which internal check
failed leaks beyond the class itself.
"""

from typing import Dict, Optional

from fastapi import status


class AuthError(Exception):
    """Base class for every rejection produced by the auth core."""

    status_code: int = status.HTTP_401_UNAUTHORIZED
    error_code: str = "auth_error"
    detail: str = "Authentication failed"
    headers: Optional[Dict[str, str]] = None

    def __init__(self, detail: Optional[str] = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class InvalidCredentials(AuthError):
    """Unknown user or wrong password. The two are indistinguishable."""
    error_code = "invalid_credentials"
    detail = "Invalid credentials"


class AccountDisabled(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "account_disabled"
    detail = "Account is disabled"


class AccountLocked(AuthError):
    status_code = status.HTTP_423_LOCKED
    error_code = "account_locked"
    detail = "Account is locked. Contact your administrator."


class TenantNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "tenant_not_found"
    detail = "Tenant not found"


class AuthenticationRequired(AuthError):
    error_code = "authentication_required"
    detail = "Authentication required"
    headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "forbidden"
    detail = "Access denied for your role"


class MissingTenantHeader(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "missing_tenant_header"
    detail = "Missing X-Tenant-ID header"


class TenantAccessDenied(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "tenant_access_denied"
    detail = "Access denied for the requested tenant"


class PatientAccessDenied(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "patient_access_denied"
    detail = "You can only access your own patient data"


class UserNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "user_not_found"
    detail = "User not found"


class TokenVerificationFailed(AuthError):
    """
    Delegated identity token rejected.

    Internal to the delegated verifier; the pipeline reports it to callers
    as AuthenticationRequired.
    """
    error_code = "token_verification_failed"
    detail = "Token verification failed"
