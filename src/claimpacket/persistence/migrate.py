"""Programmatic Alembic entry points (no alembic CLI or ini file needed)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory

from claimpacket.persistence.db import get_admin_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_alembic_config() -> Config:
    """Create an Alembic config pointing at the migrations directory."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return config


def get_head_revision() -> str | None:
    return ScriptDirectory.from_config(get_alembic_config()).get_current_head()


def run_upgrade(engine: Engine | None = None, revision: str = "head") -> None:
    """Upgrade the schema. Uses the admin engine when none is given."""
    engine = engine or get_admin_engine()
    config = get_alembic_config()
    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.upgrade(config, revision)
    logger.info("Migrations upgraded to %s", revision)


def run_downgrade(engine: Engine | None = None, revision: str = "base") -> None:
    engine = engine or get_admin_engine()
    config = get_alembic_config()
    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.downgrade(config, revision)
    logger.info("Migrations downgraded to %s", revision)
