"""
Discharge Portal - Generate a Session Token

Issues a session token for an existing user so protected endpoints can be
called with curl during local development. Uses the same secret the API
resolves at startup.

Usage:
    python -m scripts.generate_session_token demo s.johnson
    curl -H "Authorization: Bearer <token>" -H "X-Tenant-ID: demo" \
        http://localhost:8000/api/v1/tenant/config
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from discharge_backend.config import settings, resolve_jwt_secret
from discharge_backend.auth.authenticator import resolve_effective_tenant_id
from discharge_backend.auth.database import get_engine, init_db
from discharge_backend.auth.repository import UserRepository
from discharge_backend.auth.tokens import SessionIdentity, TokenService


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Issue a session token for a user")
    parser.add_argument("tenant_id")
    parser.add_argument("username")
    args = parser.parse_args(argv)

    if settings.is_production:
        print("Refusing to mint tokens with ENVIRONMENT=production.")
        return 1

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    user = UserRepository(engine).find_by_tenant_and_username(args.tenant_id, args.username)
    if user is None:
        print(f"User {args.username} not found in tenant {args.tenant_id}.")
        return 1

    tokens = TokenService(
        resolve_jwt_secret(settings),
        algorithm=settings.JWT_ALGORITHM,
        clock_skew_seconds=settings.TOKEN_CLOCK_SKEW_SECONDS,
    )
    identity = SessionIdentity.from_user(user, resolve_effective_tenant_id(user, args.tenant_id))

    print(tokens.issue(identity))
    return 0


if __name__ == "__main__":
    sys.exit(main())
