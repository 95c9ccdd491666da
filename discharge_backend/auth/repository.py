"""
Discharge Portal - Credential Store

Lookup and login bookkeeping for user records.

Failed-login accounting is a single atomic UPDATE: the counter increment
and the lock decision happen in the database, so concurrent wrong
passwords on the same account can neither skip nor double-count toward
the lock threshold.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import and_, case, literal, update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from discharge_backend.auth.models import Role, UserRecord, utc_now


LOCK_REASON_MAX_ATTEMPTS = "exceeded maximum failed login attempts"

# Identity fields fixed at creation
_IMMUTABLE_FIELDS = {"id", "tenant_id", "created_at", "created_by"}


@dataclass(frozen=True)
class FailedLoginResult:
    """Counter and lock state right after a failed attempt was recorded."""
    failed_login_attempts: int
    is_locked: bool


class UserRepository:
    """
    Credential store adapter over SQLModel.

    Usage:
        users = UserRepository(engine)
        user = users.find_by_tenant_and_username("demo", "s.johnson")
    """

    def __init__(self, engine: Engine):
        self._engine = engine

    def find_by_tenant_and_username(
        self, tenant_id: Optional[str], username: str
    ) -> Optional[UserRecord]:
        """
        Find a user by tenant and username.

        System admins have no tenant; they are found by username alone
        among tenant-less records.
        """
        with Session(self._engine) as db:
            statement = select(UserRecord).where(UserRecord.username == username)
            if tenant_id:
                statement = statement.where(UserRecord.tenant_id == tenant_id)
            else:
                statement = statement.where(UserRecord.tenant_id.is_(None))
            user = db.exec(statement).first()
            if user is None and tenant_id:
                # A system admin logs in through any tenant's login page
                user = db.exec(
                    select(UserRecord).where(
                        UserRecord.username == username,
                        UserRecord.tenant_id.is_(None),
                        UserRecord.role == Role.SYSTEM_ADMIN,
                    )
                ).first()
            return user

    def get(self, user_id: str) -> Optional[UserRecord]:
        with Session(self._engine) as db:
            return db.get(UserRecord, user_id)

    def create(self, user: UserRecord, actor: Optional[str] = None) -> UserRecord:
        """
        Persist a new user.

        Raises:
            ValueError: tenant_id missing for a non-system-admin role
        """
        if user.role != Role.SYSTEM_ADMIN and not user.tenant_id:
            raise ValueError("Only system_admin users may have no tenant")

        user.created_by = actor
        user.updated_by = actor
        with Session(self._engine) as db:
            db.add(user)
            db.commit()
            db.refresh(user)
            return user

    def update(self, user_id: str, actor: Optional[str] = None, **fields: Any) -> Optional[UserRecord]:
        """
        Apply a partial update and stamp the audit fields.

        Raises:
            ValueError: Attempt to change an immutable field (e.g. tenant_id)
        """
        forbidden = _IMMUTABLE_FIELDS.intersection(fields)
        if forbidden:
            raise ValueError(f"Immutable user fields: {sorted(forbidden)}")

        with Session(self._engine) as db:
            user = db.get(UserRecord, user_id)
            if user is None:
                return None
            for name, value in fields.items():
                setattr(user, name, value)
            user.updated_at = utc_now()
            user.updated_by = actor
            db.add(user)
            db.commit()
            db.refresh(user)
            return user

    def record_failed_login(
        self,
        user_id: str,
        max_attempts: int,
        now: Optional[datetime] = None,
    ) -> Optional[FailedLoginResult]:
        """
        Atomically count a failed attempt and lock at the threshold.

        Every SET expression reads the pre-update row, so the increment and
        the lock decision are evaluated against the same counter value.

        Returns:
            New counter and lock state, None if the user vanished
        """
        now = now or utc_now()
        counter = UserRecord.failed_login_attempts
        reaches_limit = counter + 1 >= max_attempts
        newly_locked = and_(reaches_limit, UserRecord.is_locked == False)  # noqa: E712

        statement = (
            update(UserRecord)
            .where(UserRecord.id == user_id)
            .values(
                failed_login_attempts=counter + 1,
                last_failed_login_at=now,
                is_locked=case((reaches_limit, True), else_=UserRecord.is_locked),
                locked_at=case((newly_locked, now), else_=UserRecord.locked_at),
                locked_reason=case(
                    (newly_locked, literal(LOCK_REASON_MAX_ATTEMPTS)),
                    else_=UserRecord.locked_reason,
                ),
                updated_at=now,
            )
            .returning(UserRecord.failed_login_attempts, UserRecord.is_locked)
        )

        with self._engine.begin() as conn:
            row = conn.execute(statement).first()

        if row is None:
            return None
        return FailedLoginResult(
            failed_login_attempts=row[0],
            is_locked=bool(row[1]),
        )

    def record_successful_login(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        password_hash: Optional[str] = None,
    ) -> bool:
        """
        Reset the failed-attempt counter and stamp the login time.

        The write only applies while the account is unlocked, so a lock
        set by concurrent failures after this attempt's lookup still wins.

        Returns:
            False when the account is locked (or gone) at write time
        """
        now = now or utc_now()
        values = {
            "failed_login_attempts": 0,
            "last_successful_login_at": now,
            "updated_at": now,
        }
        if password_hash:
            values["password_hash"] = password_hash

        statement = (
            update(UserRecord)
            .where(UserRecord.id == user_id, UserRecord.is_locked == False)  # noqa: E712
            .values(**values)
            .returning(UserRecord.id)
        )
        with self._engine.begin() as conn:
            row = conn.execute(statement).first()
        return row is not None

    def unlock(self, user_id: str, actor: Optional[str] = None) -> Optional[UserRecord]:
        """Clear lock state and the failed-attempt counter."""
        return self.update(
            user_id,
            actor=actor,
            is_locked=False,
            locked_at=None,
            locked_reason=None,
            failed_login_attempts=0,
        )
