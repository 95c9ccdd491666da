"""
Discharge Portal - Test Configuration

Pytest fixtures for authentication testing.
Provides test settings, database, client, tenant and user fixtures.
"""

from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from discharge_backend.app import create_app
from discharge_backend.auth.authenticator import PasswordAuthenticator, resolve_effective_tenant_id
from discharge_backend.auth.database import get_engine, init_db
from discharge_backend.auth.models import Role, UserRecord
from discharge_backend.auth.password import hash_password
from discharge_backend.auth.repository import UserRepository
from discharge_backend.auth.tokens import SessionIdentity, TokenService
from discharge_backend.config import Settings
from discharge_backend.logging import configure_logging
from discharge_backend.tenants.directory import TenantDirectory
from discharge_backend.tenants.models import TenantRecord


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

TEST_JWT_SECRET = "test-secret-not-for-production-0123456789"
TEST_CLIENT_ID = "1234567890-test.apps.googleusercontent.com"

# bcrypt cost 4 keeps fixtures fast; the service itself runs with 10
FIXTURE_BCRYPT_ROUNDS = 4

DEFAULT_PASSWORD = "Discharge#2024"

TENANT_YAML = """
tenants:
  north:
    name: North Valley Clinic
    type: clinic
    branding:
      primaryColor: "#7c3aed"
  closed:
    name: Closed Clinic
    status: suspended
  demo:
    name: Demo Hospital (yaml copy)
"""


@pytest.fixture(scope="session", autouse=True)
def _structlog_for_tests():
    """Every level reaches capture_logs()."""
    configure_logging("DEBUG")


@pytest.fixture
def tenant_yaml(tmp_path) -> str:
    path = tmp_path / "tenants.yaml"
    path.write_text(TENANT_YAML)
    return str(path)


@pytest.fixture
def settings(tenant_yaml) -> Settings:
    return Settings(
        ENVIRONMENT="test",
        JWT_SECRET=TEST_JWT_SECRET,
        BCRYPT_ROUNDS=10,
        DATABASE_URL=TEST_DATABASE_URL,
        TENANT_CONFIG_PATH=tenant_yaml,
        GOOGLE_CLIENT_ID=TEST_CLIENT_ID,
        SERVICE_ACCOUNT_PATH="",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)

    with Session(engine) as session:
        session.add(TenantRecord(
            id="demo",
            name="Demo Hospital",
            type="demo",
            branding={"primaryColor": "#0f766e"},
        ))
        session.commit()

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def users(test_engine) -> UserRepository:
    return UserRepository(test_engine)


@pytest.fixture
def tenants(test_engine, settings) -> TenantDirectory:
    return TenantDirectory(
        test_engine,
        fallback_path=settings.TENANT_CONFIG_PATH,
        asset_base_url="https://assets.test",
    )


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(TEST_JWT_SECRET, clock_skew_seconds=30)


@pytest.fixture
def authenticator(users, tenants, token_service) -> PasswordAuthenticator:
    return PasswordAuthenticator(
        users,
        tenants,
        token_service,
        max_failed_attempts=3,
        bcrypt_rounds=10,
    )


@pytest.fixture
def app(settings, test_engine):
    return create_app(settings, engine=test_engine)


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client with fresh database."""
    with TestClient(app) as c:
        yield c


# =============================================================================
# USERS
# =============================================================================

def make_user(
    users: UserRepository,
    username: str,
    role: Role,
    tenant_id: Optional[str] = "demo",
    password: str = DEFAULT_PASSWORD,
    **fields,
) -> UserRecord:
    """Persist a user with a fast bcrypt hash."""
    user = UserRecord(
        tenant_id=tenant_id,
        username=username,
        name=fields.pop("name", username.title()),
        role=role,
        password_hash=hash_password(password, rounds=FIXTURE_BCRYPT_ROUNDS),
        **fields,
    )
    return users.create(user, actor="tests")


@pytest.fixture
def clinician(users) -> UserRecord:
    """s.johnson, clinician of the demo tenant."""
    return make_user(users, "s.johnson", Role.CLINICIAN, name="Dr. Sarah Johnson")


@pytest.fixture
def patient(users) -> UserRecord:
    return make_user(users, "patient.doe", Role.PATIENT, linked_patient_id="patient-0001")


@pytest.fixture
def expert(users) -> UserRecord:
    return make_user(users, "m.chen", Role.EXPERT)


@pytest.fixture
def tenant_admin(users) -> UserRecord:
    return make_user(users, "admin", Role.TENANT_ADMIN)


@pytest.fixture
def system_admin(users) -> UserRecord:
    return make_user(users, "sysadmin", Role.SYSTEM_ADMIN, tenant_id=None)


@pytest.fixture
def north_clinician(users) -> UserRecord:
    return make_user(users, "r.patel", Role.CLINICIAN, tenant_id="north")


@pytest.fixture
def inactive_user(users) -> UserRecord:
    return make_user(users, "former.staff", Role.CLINICIAN, is_active=False)


def session_token(tokens: TokenService, user: UserRecord, tenant_id: Optional[str] = None) -> str:
    """Sign a session token for a user without going through login."""
    effective = resolve_effective_tenant_id(user, tenant_id or user.tenant_id or "demo")
    return tokens.issue(SessionIdentity.from_user(user, effective))


def auth_headers(token: str, tenant_id: Optional[str] = None) -> dict:
    """Create authorization headers for authenticated requests."""
    headers = {"Authorization": f"Bearer {token}"}
    if tenant_id:
        headers["X-Tenant-ID"] = tenant_id
    return headers
