"""
Discharge Portal - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

Components never read the module-level ``settings`` directly; the
application factory hands an explicit ``Settings`` instance to each of
them so tests can run with their own secrets and databases.

Security: No production secret is hardcoded. The development JWT secret
below is refused when ENVIRONMENT=production.
"""

import json
from pathlib import Path
from typing import List, Optional

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings


logger = structlog.get_logger(__name__)

# Session tokens always live exactly 24 hours
SESSION_TOKEN_TTL_SECONDS = 86400

DEV_FALLBACK_JWT_SECRET = "dev-only-discharge-portal-secret-change-me"

PACKAGE_ROOT = Path(__file__).parent


class ConfigurationError(RuntimeError):
    """Raised at startup when the configuration cannot be used safely."""
    pass


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        ENVIRONMENT: development, test or production
        JWT_SECRET: HMAC key for session tokens
        TOKEN_CLOCK_SKEW_SECONDS: Leeway applied to exp/iat checks
        BCRYPT_ROUNDS: bcrypt cost factor for new hashes (>= 10)
        MAX_FAILED_LOGIN_ATTEMPTS: Failed logins before the account locks
        DATABASE_URL: Credential store and tenant directory database
        TENANT_CONFIG_PATH: YAML fallback for tenant configuration
        POLICY_PATH: Role allow-lists per protected operation
        GOOGLE_CLIENT_ID: Expected audience for delegated identity tokens
        SERVICE_ACCOUNT_PATH: Key file used to derive GOOGLE_CLIENT_ID
        DELEGATED_TIMEOUT_SECONDS: Budget for each identity-provider call
    """

    ENVIRONMENT: str = "development"

    # Session tokens
    JWT_SECRET: str = ""  # Must be set via environment in production
    JWT_ALGORITHM: str = "HS256"
    TOKEN_CLOCK_SKEW_SECONDS: int = Field(default=30, ge=0, le=60)

    # Password login
    BCRYPT_ROUNDS: int = Field(default=12, ge=10, le=16)
    MAX_FAILED_LOGIN_ATTEMPTS: int = Field(default=3, ge=1)

    # Storage
    DATABASE_URL: str = "sqlite:///./discharge_portal.db"
    TENANT_CONFIG_PATH: str = str(PACKAGE_ROOT.parent / "config" / "tenants.yaml")
    POLICY_PATH: str = str(PACKAGE_ROOT / "gateway" / "policies.yaml")
    ASSET_BASE_URL: str = "https://storage.googleapis.com/discharge-portal-assets"

    # Delegated identity (service-to-service callers)
    GOOGLE_CLIENT_ID: str = ""
    SERVICE_ACCOUNT_PATH: str = ""
    TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"
    DELEGATED_ISSUERS: List[str] = ["accounts.google.com", "https://accounts.google.com"]
    SERVICE_AUDIENCE_SUFFIXES: List[str] = [".run.app"]
    DELEGATED_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


def resolve_jwt_secret(settings: Settings) -> str:
    """
    Return the session-token signing secret.

    Falls back to a development constant when JWT_SECRET is unset, with a
    prominent warning. In production the fallback is refused.

    Raises:
        ConfigurationError: JWT_SECRET unset while ENVIRONMENT=production
    """
    if settings.JWT_SECRET:
        return settings.JWT_SECRET

    if settings.is_production:
        raise ConfigurationError(
            "JWT_SECRET must be set when ENVIRONMENT=production"
        )

    logger.warning(
        "jwt_secret_fallback_in_use",
        environment=settings.ENVIRONMENT,
        hint="set JWT_SECRET before deploying",
    )
    return DEV_FALLBACK_JWT_SECRET


def resolve_google_client_id(settings: Settings) -> Optional[str]:
    """
    Expected audience for delegated identity tokens.

    GOOGLE_CLIENT_ID wins; otherwise the ``client_id`` of the service
    account key file is used. Returns None when neither is available.
    """
    if settings.GOOGLE_CLIENT_ID:
        return settings.GOOGLE_CLIENT_ID

    if not settings.SERVICE_ACCOUNT_PATH:
        return None

    path = Path(settings.SERVICE_ACCOUNT_PATH)
    if not path.exists():
        logger.warning("service_account_missing", path=str(path))
        return None

    try:
        with open(path, "r") as f:
            client_id = json.load(f).get("client_id")
    except (OSError, ValueError) as e:
        logger.warning("service_account_unreadable", path=str(path), error=str(e))
        return None

    if not client_id:
        logger.warning("service_account_without_client_id", path=str(path))
    return client_id or None


settings = Settings()
