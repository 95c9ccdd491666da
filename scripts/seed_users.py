"""
Discharge Portal - Database Seed Script

Creates the demo tenant and one user per role for development.

Usage:
    python -m scripts.seed_users
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from discharge_backend.config import settings
from discharge_backend.auth.database import get_engine, init_db
from discharge_backend.auth.models import Role, UserRecord
from discharge_backend.auth.password import hash_password
from discharge_backend.auth.repository import UserRepository
from discharge_backend.tenants.models import TenantRecord


DEMO_TENANT_ID = "demo"

DEMO_USERS = [
    # (username, display name, role, password, linked patient)
    ("sysadmin", "System Administrator", Role.SYSTEM_ADMIN, "Admin@Discharge2024", None),
    ("admin", "Demo Tenant Admin", Role.TENANT_ADMIN, "TenantAdmin@2024", None),
    ("s.johnson", "Dr. Sarah Johnson", Role.CLINICIAN, "Clinician@2024", None),
    ("m.chen", "Dr. Michael Chen", Role.EXPERT, "Expert@2024", None),
    ("patient.doe", "John Doe", Role.PATIENT, "Patient@2024", "patient-0001"),
]


def seed_demo_tenant(engine):
    """Create the demo tenant row if missing."""
    with Session(engine) as session:
        if session.get(TenantRecord, DEMO_TENANT_ID):
            print(f"Tenant {DEMO_TENANT_ID} already exists.")
            return

        session.add(TenantRecord(
            id=DEMO_TENANT_ID,
            name="Demo Hospital",
            type="demo",
            branding={"primaryColor": "#0f766e"},
        ))
        session.commit()
        print(f"Created tenant: {DEMO_TENANT_ID}")


def seed_demo_users(engine):
    """Create demo users for all roles."""
    users = UserRepository(engine)

    for username, name, role, password, linked_patient_id in DEMO_USERS:
        tenant_id = None if role == Role.SYSTEM_ADMIN else DEMO_TENANT_ID

        if users.find_by_tenant_and_username(tenant_id, username):
            print(f"User {username} already exists.")
            continue

        users.create(
            UserRecord(
                tenant_id=tenant_id,
                username=username,
                name=name,
                role=role,
                linked_patient_id=linked_patient_id,
                password_hash=hash_password(password, rounds=settings.BCRYPT_ROUNDS),
            ),
            actor="seed_users",
        )
        print(f"Created user: {username} ({role.value}) password={password}")


if __name__ == "__main__":
    print("=" * 50)
    print("Discharge Portal - User Seed Script")
    print("=" * 50)

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    seed_demo_tenant(engine)
    seed_demo_users(engine)

    print()
    print("Done!")
