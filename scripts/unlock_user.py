"""
Discharge Portal - Unlock a User Account

Clears the lock flag and failed-attempt counter of an account that was
locked after too many failed logins.

Usage:
    python -m scripts.unlock_user demo s.johnson
    python -m scripts.unlock_user --system sysadmin
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from discharge_backend.config import settings
from discharge_backend.auth.database import get_engine, init_db
from discharge_backend.auth.repository import UserRepository


def unlock(users: UserRepository, tenant_id, username: str) -> bool:
    user = users.find_by_tenant_and_username(tenant_id, username)
    if user is None:
        print(f"User {username} not found in tenant {tenant_id or '<system>'}.")
        return False

    if not user.is_locked and not user.failed_login_attempts:
        print(f"User {username} is not locked.")
        return True

    users.unlock(user.id, actor="unlock_user")
    print(f"Unlocked {username} (was: locked={user.is_locked}, "
          f"failed attempts={user.failed_login_attempts}, reason={user.locked_reason}).")
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Unlock a locked portal account")
    parser.add_argument("tenant_id", nargs="?", help="Tenant of the user")
    parser.add_argument("username")
    parser.add_argument("--system", action="store_true", help="Target a system admin (no tenant)")
    args = parser.parse_args(argv)

    if not args.system and not args.tenant_id:
        parser.error("tenant_id is required unless --system is given")

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    tenant_id = None if args.system else args.tenant_id
    return 0 if unlock(UserRepository(engine), tenant_id, args.username) else 1


if __name__ == "__main__":
    sys.exit(main())
