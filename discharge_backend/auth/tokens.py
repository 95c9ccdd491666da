"""
Discharge Portal - Session Token Management

Issues and verifies the platform's own signed session tokens (HS256 JWT).

A session token carries a closed claim set:
- typ: always "session" (distinguishes it from delegated identity tokens)
- user_id, tenant_id, username, name, role, linked_patient_id
- iat / exp: exp is always iat + 24h

Security:
- The signature covers every claim; any mutation invalidates the token
- Decoded payloads must match the claim shape exactly (extra keys rejected)
- No refresh and no revocation: a token is valid until it expires
"""

import time
from typing import Literal, Optional

import structlog
from jose import jwt, JWTError
from pydantic import BaseModel, ValidationError, model_validator

from discharge_backend.auth.models import Role, UserRecord
from discharge_backend.config import SESSION_TOKEN_TTL_SECONDS


logger = structlog.get_logger(__name__)


class SessionIdentity(BaseModel):
    """Who the token speaks for. Input to TokenService.issue()."""
    user_id: str
    tenant_id: Optional[str] = None
    username: str
    name: str
    role: Role
    linked_patient_id: Optional[str] = None

    class Config:
        extra = "forbid"
        frozen = True

    @model_validator(mode="after")
    def check_tenant_required(self):
        if self.role != Role.SYSTEM_ADMIN and not self.tenant_id:
            raise ValueError("tenant_id is required for every role except system_admin")
        return self

    @classmethod
    def from_user(cls, user: UserRecord, tenant_id: Optional[str]) -> "SessionIdentity":
        return cls(
            user_id=user.id,
            tenant_id=tenant_id,
            username=user.username,
            name=user.name,
            role=user.role,
            linked_patient_id=user.linked_patient_id,
        )


class SessionClaims(SessionIdentity):
    """
    Full decoded session token payload.

    Attributes:
        typ: Token kind tag
        iat: Issued-at (epoch seconds)
        exp: Expiry (epoch seconds), always iat + 86400
    """
    typ: Literal["session"] = "session"
    iat: int
    exp: int

    @model_validator(mode="after")
    def check_fixed_lifetime(self):
        if self.exp != self.iat + SESSION_TOKEN_TTL_SECONDS:
            raise ValueError("exp must equal iat + session lifetime")
        return self

    def identity(self) -> SessionIdentity:
        return SessionIdentity(**self.model_dump(exclude={"typ", "iat", "exp"}))


class TokenService:
    """
    Session token issuer and verifier.

    Constructed once at startup with the resolved signing secret and
    injected wherever tokens are issued or checked.

    Usage:
        tokens = TokenService(secret, clock_skew_seconds=30)
        token = tokens.issue(identity)
        claims = tokens.verify(token)  # None when invalid
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        clock_skew_seconds: int = 30,
    ):
        if not secret:
            raise ValueError("TokenService requires a signing secret")
        self._secret = secret
        self._algorithm = algorithm
        self._clock_skew = clock_skew_seconds

    @property
    def lifetime_seconds(self) -> int:
        return SESSION_TOKEN_TTL_SECONDS

    def issue(self, identity: SessionIdentity, now: Optional[int] = None) -> str:
        """
        Sign a session token for the given identity.

        Args:
            identity: Claims to carry
            now: Issue time override (epoch seconds), defaults to current time

        Returns:
            Encoded JWT string
        """
        issued_at = int(now if now is not None else time.time())
        claims = SessionClaims(
            **identity.model_dump(),
            iat=issued_at,
            exp=issued_at + SESSION_TOKEN_TTL_SECONDS,
        )
        payload = claims.model_dump(mode="json")
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[SessionClaims]:
        """
        Verify signature, expiry and claim shape.

        Returns:
            Decoded SessionClaims, or None for a malformed, tampered,
            expired or wrongly shaped token. Never raises.
        """
        if not token or not isinstance(token, str):
            return None

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "leeway": self._clock_skew,
                    "require_exp": True,
                    "require_iat": True,
                },
            )
        except JWTError as e:
            logger.debug("session_token_rejected", reason=str(e))
            return None

        try:
            return SessionClaims.model_validate(payload)
        except ValidationError as e:
            logger.warning("session_token_shape_invalid", errors=e.error_count())
            return None
