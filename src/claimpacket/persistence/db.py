"""PostgreSQL connectivity and org-scoped connection helpers.

Environment Variables:
    CLAIMPACKET_DATABASE_URL: Application role connection string (non-superuser)
    CLAIMPACKET_DATABASE_ADMIN_URL: Admin connection string (migrations/tests only)

Every pipeline table carries an org_id column guarded by a row-level-security
policy keyed on the `claimpacket.org_id` setting, which is set per
transaction. Repositories additionally filter on org_id explicitly.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

DATABASE_URL_ENV = "CLAIMPACKET_DATABASE_URL"
DATABASE_ADMIN_URL_ENV = "CLAIMPACKET_DATABASE_ADMIN_URL"

_app_engine: Engine | None = None
_admin_engine: Engine | None = None

_ORG_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid."""

    pass


def is_postgres_configured() -> bool:
    """Return True if CLAIMPACKET_DATABASE_URL is set."""
    return bool(os.environ.get(DATABASE_URL_ENV))


def _normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url(admin: bool = False) -> str:
    """Get the database URL from environment.

    Raises:
        DatabaseConfigError: If the required environment variable is not set.
    """
    env_var = DATABASE_ADMIN_URL_ENV if admin else DATABASE_URL_ENV
    url = os.environ.get(env_var)
    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {env_var} environment variable."
        )
    return _normalize_url(url)


def get_app_engine() -> Engine:
    """Get or create the application engine."""
    global _app_engine

    if _app_engine is None:
        _app_engine = create_engine(
            get_database_url(admin=False),
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )
        logger.info("Created application database engine")

    return _app_engine


def get_admin_engine() -> Engine:
    """Get or create the admin engine used by migrations."""
    global _admin_engine

    if _admin_engine is None:
        _admin_engine = create_engine(
            get_database_url(admin=True),
            pool_size=2,
            max_overflow=5,
            pool_pre_ping=True,
        )
        logger.info("Created admin database engine")

    return _admin_engine


def set_org_local(conn: Connection, org_id: str) -> None:
    """Scope the current transaction to an organization for RLS.

    Raises:
        DatabaseConfigError: If org_id has an unexpected format.
        SQLAlchemyError: If the statement fails.
    """
    if not _ORG_ID_PATTERN.match(org_id):
        raise DatabaseConfigError(f"Invalid org_id format: {org_id}")

    try:
        conn.execute(
            text("SELECT set_config('claimpacket.org_id', :org_id, true)"),
            {"org_id": org_id},
        )
    except SQLAlchemyError as e:
        logger.error("Failed to set org context: %s", e)
        raise


@contextmanager
def org_transaction(engine: Engine, org_id: str) -> Generator[Connection, None, None]:
    """Open a connection, begin a transaction, and scope it to org_id.

    Commits on success, rolls back on error.
    """
    with engine.connect() as conn, conn.begin():
        set_org_local(conn, org_id)
        yield conn


def reset_engines() -> None:
    """Dispose global engines. Used by tests."""
    global _app_engine, _admin_engine
    if _app_engine is not None:
        _app_engine.dispose()
        _app_engine = None
    if _admin_engine is not None:
        _admin_engine.dispose()
        _admin_engine = None
