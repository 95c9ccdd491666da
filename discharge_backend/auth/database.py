"""
Discharge Portal - Database Configuration

SQLModel engine setup for the credential store and tenant directory.
Supports PostgreSQL (production) and SQLite (development, tests).

Usage:
    from discharge_backend.auth.database import get_engine, init_db

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)  # Creates tables
"""

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: SQLAlchemy URL
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if database_url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def init_db(engine: Engine) -> None:
    """
    Create all tables. Safe to call multiple times.
    """
    # Import models to register them with SQLModel
    from discharge_backend.auth.models import UserRecord  # noqa: F401
    from discharge_backend.tenants.models import TenantRecord  # noqa: F401

    SQLModel.metadata.create_all(engine)
