"""
Discharge Portal - Delegated Identity Verification

Recognizes trusted service callers (scheduled jobs, other Cloud Run
services) presenting Google-issued OIDC identity tokens in the same
Authorization slot that humans use for session tokens.

Verification is an ordered list of strategies chosen from the token's
(unverified) audience:
- audience is a platform service URL (*.run.app):
    tokeninfo endpoint, then signature check without audience match
- audience equals the configured client id:
    signature check with strict audience match
- anything else:
    best-effort signature check without audience match (logged)

The first strategy that succeeds wins. Its payload must then carry an
allowed issuer, email_verified == true and an email, whatever the path.

Security:
- Unverified claims only choose strategies; they never grant anything
- Each identity-provider call is bounded by DELEGATED_TIMEOUT_SECONDS;
  a timeout fails that strategy, never the request
- Service principals are not users: no role, no tenant
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import google.auth.transport.requests
import httpx
import structlog
from google.auth import exceptions as google_exceptions
from google.oauth2 import id_token as google_id_token
from jose import jwt, JWTError

from discharge_backend.auth.errors import TokenVerificationFailed
from discharge_backend.config import Settings, resolve_google_client_id


logger = structlog.get_logger(__name__)

DEFAULT_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


@dataclass(frozen=True)
class DelegatedClaims:
    """Identity proven by a delegated token. Grants service trust only."""
    email: str
    email_verified: bool


@dataclass(frozen=True)
class VerificationContext:
    """
    Everything a strategy may consult besides the token itself.

    Attributes:
        audience: Unverified aud claim, for strategy selection only
        client_id: Configured expected audience, if any
        timeout_seconds: Budget for each outbound identity-provider call
    """
    audience: Optional[Union[str, List[str]]]
    client_id: Optional[str]
    issuers: Tuple[str, ...] = DEFAULT_ISSUERS
    service_audience_suffixes: Tuple[str, ...] = (".run.app",)
    tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo"
    timeout_seconds: float = 5.0
    clock_skew_seconds: int = 30


Strategy = Callable[[str, VerificationContext], Dict[str, Any]]


class _TimeoutRequest(google.auth.transport.requests.Request):
    """google-auth transport that applies one fixed timeout to every call."""

    def __init__(self, timeout_seconds: float):
        super().__init__()
        self._timeout_seconds = timeout_seconds

    def __call__(self, url, method="GET", body=None, headers=None, timeout=None, **kwargs):
        return super().__call__(
            url,
            method=method,
            body=body,
            headers=headers,
            timeout=self._timeout_seconds,
            **kwargs,
        )


# =============================================================================
# STRATEGIES
# =============================================================================

def verify_with_tokeninfo(token: str, ctx: VerificationContext) -> Dict[str, Any]:
    """Ask the identity provider's tokeninfo endpoint to validate the token."""
    try:
        with httpx.Client(timeout=ctx.timeout_seconds) as client:
            response = client.get(ctx.tokeninfo_url, params={"id_token": token})
    except httpx.HTTPError as e:
        raise TokenVerificationFailed(f"tokeninfo unavailable: {type(e).__name__}")

    if response.status_code != 200:
        raise TokenVerificationFailed(f"tokeninfo rejected token ({response.status_code})")

    try:
        payload = response.json()
    except ValueError:
        raise TokenVerificationFailed("tokeninfo returned malformed JSON")

    if not isinstance(payload, dict):
        raise TokenVerificationFailed("tokeninfo returned unexpected payload")
    return payload


def _verify_signature(
    token: str, ctx: VerificationContext, audience: Optional[str]
) -> Dict[str, Any]:
    try:
        payload = google_id_token.verify_oauth2_token(
            token,
            _TimeoutRequest(ctx.timeout_seconds),
            audience=audience,
            clock_skew_in_seconds=ctx.clock_skew_seconds,
        )
    except (ValueError, google_exceptions.GoogleAuthError) as e:
        raise TokenVerificationFailed(f"signature check failed: {e}")
    return dict(payload)


def verify_signature_without_audience(token: str, ctx: VerificationContext) -> Dict[str, Any]:
    """Full signature and expiry check; any audience accepted."""
    return _verify_signature(token, ctx, audience=None)


def verify_signature_strict_audience(token: str, ctx: VerificationContext) -> Dict[str, Any]:
    """Full signature and expiry check; aud must equal the configured client id."""
    if not ctx.client_id:
        raise TokenVerificationFailed("no client id configured")
    return _verify_signature(token, ctx, audience=ctx.client_id)


# =============================================================================
# STRATEGY SELECTION AND CLAIM CHECKS
# =============================================================================

def _audiences(audience: Optional[Union[str, List[str]]]) -> List[str]:
    if audience is None:
        return []
    if isinstance(audience, str):
        return [audience]
    return [a for a in audience if isinstance(a, str)]


def is_service_audience(audience: str, suffixes: Sequence[str]) -> bool:
    """Whether an audience looks like one of the platform's own service URLs."""
    parsed = urlparse(audience)
    if parsed.scheme != "https" or not parsed.hostname:
        return False
    return any(parsed.hostname.endswith(suffix) for suffix in suffixes)


def plan_strategies(ctx: VerificationContext) -> List[Tuple[str, Strategy]]:
    """
    Ordered (name, strategy) pairs for the token's audience shape.
    """
    audiences = _audiences(ctx.audience)

    if any(is_service_audience(a, ctx.service_audience_suffixes) for a in audiences):
        return [
            ("tokeninfo", verify_with_tokeninfo),
            ("signature_any_audience", verify_signature_without_audience),
        ]

    if ctx.client_id and ctx.client_id in audiences:
        return [("signature_strict_audience", verify_signature_strict_audience)]

    return [("signature_best_effort", verify_signature_without_audience)]


def check_identity_claims(payload: Dict[str, Any], ctx: VerificationContext) -> DelegatedClaims:
    """
    Final gate applied to whatever a strategy returned.

    Raises:
        TokenVerificationFailed: Wrong issuer, unverified email or no email
    """
    issuer = payload.get("iss")
    if issuer not in ctx.issuers:
        raise TokenVerificationFailed(f"issuer not allowed: {issuer}")

    # tokeninfo reports booleans as strings
    verified = payload.get("email_verified")
    if not (verified is True or str(verified).lower() == "true"):
        raise TokenVerificationFailed("email not verified")

    email = payload.get("email")
    if not email or not isinstance(email, str):
        raise TokenVerificationFailed("email claim missing")

    return DelegatedClaims(email=email, email_verified=True)


def looks_like_jwt(token: Optional[str]) -> bool:
    return bool(token) and isinstance(token, str) and len(token.split(".")) == 3


# =============================================================================
# VERIFIER
# =============================================================================

@dataclass
class DelegatedIdentityVerifier:
    """
    Verifies delegated identity tokens for service-to-service calls.

    Usage:
        verifier = DelegatedIdentityVerifier.from_settings(settings)
        claims = verifier.verify(token)  # None when not acceptable

    Blocking (network I/O); call it from a worker thread in async code.
    """
    client_id: Optional[str] = None
    issuers: Tuple[str, ...] = DEFAULT_ISSUERS
    service_audience_suffixes: Tuple[str, ...] = (".run.app",)
    tokeninfo_url: str = "https://oauth2.googleapis.com/tokeninfo"
    timeout_seconds: float = 5.0
    clock_skew_seconds: int = 30
    planner: Callable[[VerificationContext], List[Tuple[str, Strategy]]] = field(
        default=plan_strategies
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "DelegatedIdentityVerifier":
        return cls(
            client_id=resolve_google_client_id(settings),
            issuers=tuple(settings.DELEGATED_ISSUERS),
            service_audience_suffixes=tuple(settings.SERVICE_AUDIENCE_SUFFIXES),
            tokeninfo_url=settings.TOKENINFO_URL,
            timeout_seconds=settings.DELEGATED_TIMEOUT_SECONDS,
            clock_skew_seconds=settings.TOKEN_CLOCK_SKEW_SECONDS,
        )

    def verify(self, token: str) -> Optional[DelegatedClaims]:
        """
        Verify a delegated identity token.

        Returns:
            DelegatedClaims on success, None otherwise. Never raises.
        """
        if not looks_like_jwt(token):
            logger.debug("delegated_token_skipped", reason="not_jwt_shaped")
            return None

        try:
            unverified = jwt.get_unverified_claims(token)
        except JWTError:
            logger.debug("delegated_token_skipped", reason="undecodable")
            return None

        # Only tokens claiming our identity provider as issuer can ever
        # verify; anything else (e.g. an expired session token) falls back
        # silently without contacting the provider.
        issuer = unverified.get("iss")
        if issuer not in self.issuers:
            logger.debug("delegated_token_not_applicable", issuer=issuer)
            return None

        ctx = VerificationContext(
            audience=unverified.get("aud"),
            client_id=self.client_id,
            issuers=self.issuers,
            service_audience_suffixes=self.service_audience_suffixes,
            tokeninfo_url=self.tokeninfo_url,
            timeout_seconds=self.timeout_seconds,
            clock_skew_seconds=self.clock_skew_seconds,
        )

        try:
            return self._run_strategies(token, ctx)
        except Exception as e:
            self._report_anomaly([f"unexpected: {type(e).__name__}"], exc_info=True)
            return None

    def _run_strategies(self, token: str, ctx: VerificationContext) -> Optional[DelegatedClaims]:
        failures: List[str] = []

        for name, strategy in self.planner(ctx):
            if name == "signature_best_effort":
                logger.info("delegated_audience_unrecognized", strategy=name)

            try:
                payload = strategy(token, ctx)
            except TokenVerificationFailed as e:
                failures.append(f"{name}: {e.detail}")
                logger.debug("delegated_strategy_failed", strategy=name, reason=e.detail)
                continue

            try:
                claims = check_identity_claims(payload, ctx)
            except TokenVerificationFailed as e:
                self._report_anomaly([f"{name}: {e.detail}"])
                return None

            logger.info("delegated_token_verified", strategy=name, service_email=claims.email)
            return claims

        self._report_anomaly(failures)
        return None

    def _report_anomaly(self, reasons: List[str], exc_info: bool = False) -> None:
        """A token claiming a trusted issuer failed every path."""
        logger.warning("delegated_token_anomaly", reasons=reasons, exc_info=exc_info)
