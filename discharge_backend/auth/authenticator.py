"""
Discharge Portal - Password Login

Login state machine:
    LOOKUP -> ACTIVE_CHECK -> LOCK_CHECK -> PASSWORD_CHECK
           -> {FAIL_INCREMENT | SUCCESS_RESET} -> TENANT_VERIFY -> ISSUE

Security:
- Unknown user and wrong password produce the same InvalidCredentials
- The failed-attempt counter is never revealed to the caller
- Reaching MAX_FAILED_LOGIN_ATTEMPTS locks the account; a locked account
  is refused even with the correct password
- Counter bookkeeping failures are logged and never change the outcome
- The success write only lands on an unlocked row; a lock set by
  concurrent failures after the lookup turns a correct password into
  AccountLocked
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from discharge_backend.auth.errors import (
    AccountDisabled,
    AccountLocked,
    InvalidCredentials,
    TenantNotFound,
)
from discharge_backend.auth.models import Role, UserRecord
from discharge_backend.auth.password import hash_password, needs_rehash, verify_password
from discharge_backend.auth.repository import UserRepository
from discharge_backend.auth.tokens import SessionIdentity, TokenService
from discharge_backend.tenants.directory import TenantDirectory
from discharge_backend.tenants.models import TenantConfig


logger = structlog.get_logger(__name__)


@dataclass
class LoginResult:
    """Successful login: signed token plus the data echoed to the client."""
    token: str
    expires_in: int
    user: UserRecord
    tenant_id: Optional[str]
    tenant: TenantConfig


def resolve_effective_tenant_id(user: UserRecord, requested_tenant_id: str) -> Optional[str]:
    """
    Tenant id placed in the session token.

    - system_admin: the record has no tenant, so the tenant the admin
      logged in through is used
    - every other role: the record's own tenant, regardless of what the
      caller declared
    """
    if user.role == Role.SYSTEM_ADMIN:
        return requested_tenant_id
    return user.tenant_id or requested_tenant_id


class PasswordAuthenticator:
    """
    Orchestrates password login against the credential store.

    Usage:
        authenticator = PasswordAuthenticator(users, tenants, tokens)
        result = authenticator.login("demo", "s.johnson", "password")
    """

    def __init__(
        self,
        users: UserRepository,
        tenants: TenantDirectory,
        tokens: TokenService,
        max_failed_attempts: int = 3,
        bcrypt_rounds: int = 12,
    ):
        self._users = users
        self._tenants = tenants
        self._tokens = tokens
        self._max_failed_attempts = max_failed_attempts
        self._bcrypt_rounds = bcrypt_rounds

    def login(self, tenant_id: str, username: str, password: str) -> LoginResult:
        """
        Authenticate a user and issue a session token.

        Raises:
            InvalidCredentials: Unknown user or wrong password
            AccountDisabled: is_active is false
            AccountLocked: Already locked, or locked by this attempt
            TenantNotFound: Declared tenant unknown (non system-admin)
        """
        log = logger.bind(tenant_id=tenant_id, username=username)
        log.info("login_attempt")

        user = self._users.find_by_tenant_and_username(tenant_id, username)
        if user is None:
            log.warning("login_failed", reason="user_not_found")
            raise InvalidCredentials()

        log = log.bind(user_id=user.id)

        if not user.is_active:
            log.warning("login_failed", reason="account_disabled")
            raise AccountDisabled()

        if user.is_locked:
            log.warning("login_failed", reason="account_locked")
            raise AccountLocked()

        if not verify_password(password, user.password_hash):
            self._register_failure(user, log)

        self._register_success(user, password, log)

        if user.role != Role.SYSTEM_ADMIN:
            self._verify_tenant(tenant_id, log)

        effective_tenant_id = resolve_effective_tenant_id(user, tenant_id)
        token = self._tokens.issue(SessionIdentity.from_user(user, effective_tenant_id))
        tenant = self._tenants.get_tenant_config_with_defaults(effective_tenant_id)

        log.info("login_succeeded", role=user.role.value, effective_tenant_id=effective_tenant_id)
        return LoginResult(
            token=token,
            expires_in=self._tokens.lifetime_seconds,
            user=user,
            tenant_id=effective_tenant_id,
            tenant=tenant,
        )

    def _register_failure(self, user: UserRecord, log) -> None:
        """Count the failed attempt, then raise the matching rejection."""
        try:
            outcome = self._users.record_failed_login(user.id, self._max_failed_attempts)
        except SQLAlchemyError as e:
            log.error("login_bookkeeping_failed", stage="failed_attempt", error=str(e))
            outcome = None

        if outcome is not None and outcome.is_locked:
            log.warning(
                "account_locked",
                failed_login_attempts=outcome.failed_login_attempts,
            )
            raise AccountLocked()

        log.warning("login_failed", reason="invalid_password")
        raise InvalidCredentials()

    def _register_success(self, user: UserRecord, password: str, log) -> None:
        new_hash = None
        if needs_rehash(user.password_hash, self._bcrypt_rounds):
            new_hash = hash_password(password, rounds=self._bcrypt_rounds)

        try:
            applied = self._users.record_successful_login(user.id, password_hash=new_hash)
        except SQLAlchemyError as e:
            log.error("login_bookkeeping_failed", stage="success_reset", error=str(e))
            return

        if not applied:
            # Locked by concurrent failures after the lookup
            log.warning("login_failed", reason="account_locked_during_attempt")
            raise AccountLocked()

        if user.failed_login_attempts:
            log.info("failed_attempts_reset", previous=user.failed_login_attempts)

    def _verify_tenant(self, tenant_id: str, log) -> None:
        try:
            exists = self._tenants.tenant_exists(tenant_id)
        except SQLAlchemyError as e:
            log.error("tenant_lookup_failed", error=str(e))
            exists = False

        if not exists:
            log.warning("login_failed", reason="tenant_not_found")
            raise TenantNotFound()
