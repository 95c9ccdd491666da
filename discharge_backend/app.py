"""
Discharge Portal - FastAPI Application Entrypoint

This module builds the API with:
- CORS and security middleware
- Session-token / delegated-identity authentication
- Role and tenant authorization on every protected route
- Credential store and tenant directory lifecycle

Every component receives the Settings object it was built from; nothing
reads configuration globals after startup.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from discharge_backend.auth.authenticator import PasswordAuthenticator
from discharge_backend.auth.database import get_engine, init_db
from discharge_backend.auth.delegated import DelegatedIdentityVerifier
from discharge_backend.auth.errors import AuthError
from discharge_backend.auth.repository import UserRepository
from discharge_backend.auth.routes import router as auth_router
from discharge_backend.auth.schemas import ErrorResponse
from discharge_backend.auth.tokens import TokenService
from discharge_backend.config import Settings, resolve_jwt_secret, settings as default_settings
from discharge_backend.gateway.middleware import SecurityMiddleware
from discharge_backend.gateway.rbac import AccessPolicy
from discharge_backend.logging import configure_logging
from discharge_backend.tenants.directory import TenantDirectory
from discharge_backend.tenants.routes import router as tenant_router


VERSION = "0.1.0"

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables in the credential store.
    Shutdown: dispose the engine.
    """
    init_db(app.state.db_engine)
    logger.info("service_started", environment=app.state.settings.ENVIRONMENT, version=VERSION)

    yield

    app.state.db_engine.dispose()


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth rejection as an ErrorResponse, nothing more."""
    body = ErrorResponse(
        detail=exc.detail,
        error_code=exc.error_code,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(),
        headers=exc.headers,
    )


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Configuration; the environment-derived default if omitted
        engine: Database engine override (tests)

    Raises:
        ConfigurationError: Unsafe configuration (e.g. no JWT secret in production)
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)

    engine = engine or get_engine(settings.DATABASE_URL)
    users = UserRepository(engine)
    tenants = TenantDirectory(
        engine,
        fallback_path=settings.TENANT_CONFIG_PATH,
        asset_base_url=settings.ASSET_BASE_URL,
    )
    token_service = TokenService(
        resolve_jwt_secret(settings),
        algorithm=settings.JWT_ALGORITHM,
        clock_skew_seconds=settings.TOKEN_CLOCK_SKEW_SECONDS,
    )

    app = FastAPI(
        title="Discharge Portal API",
        description="Multi-tenant patient discharge instruction platform",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.db_engine = engine
    app.state.users = users
    app.state.tenants = tenants
    app.state.token_service = token_service
    app.state.delegated_verifier = DelegatedIdentityVerifier.from_settings(settings)
    app.state.access_policy = AccessPolicy.from_yaml(settings.POLICY_PATH)
    app.state.authenticator = PasswordAuthenticator(
        users,
        tenants,
        token_service,
        max_failed_attempts=settings.MAX_FAILED_LOGIN_ATTEMPTS,
        bcrypt_rounds=settings.BCRYPT_ROUNDS,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "PUT", "PATCH"],
        allow_headers=["Authorization", "Content-Type", "X-Tenant-ID", "X-Request-ID"],
    )
    app.add_middleware(SecurityMiddleware)

    app.add_exception_handler(AuthError, auth_error_handler)

    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(tenant_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check for load balancers and local tooling."""
        return {"status": "healthy", "version": VERSION}

    @app.get("/")
    async def root():
        return {
            "name": "Discharge Portal API",
            "version": VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
