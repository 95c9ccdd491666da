"""
Discharge Portal - Authentication Package

Multi-tenant authentication with:
- Stateless 24h session tokens (HS256 JWT)
- bcrypt password hashing with lockout after repeated failures
- Delegated identity tokens for service-to-service callers
- Authenticate -> role -> tenant isolation pipeline on every request
"""

from discharge_backend.auth.models import Role, UserRecord
from discharge_backend.auth.dependencies import RequireAccess, authenticate_request
from discharge_backend.auth.tokens import SessionClaims, SessionIdentity, TokenService

__all__ = [
    "Role",
    "UserRecord",
    "RequireAccess",
    "authenticate_request",
    "SessionClaims",
    "SessionIdentity",
    "TokenService",
]
