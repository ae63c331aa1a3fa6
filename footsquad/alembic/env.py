"""
Alembic environment for the FootSquad schema.

Used by the Alembic CLI (``alembic upgrade head`` from the footsquad
directory) and by ``upgrade_to_head()`` for programmatic upgrades.
"""

from logging.config import fileConfig
import asyncio
import logging
from pathlib import Path
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context, config as alembic_config, command

# Import all models so Alembic can detect them
from footsquad.database.db import Base, DATABASE_URL
from footsquad.database import models  # noqa: F401

logger = logging.getLogger(__name__)

ALEMBIC_INI_PATH = Path(__file__).parent.parent / "alembic.ini"

# Only available when run by the Alembic CLI
config = None
try:
    config = context.config
    if config.config_file_name is not None:
        fileConfig(config.config_file_name, disable_existing_loggers=False)
except AttributeError:
    pass

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url") or DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations over an async engine built from DATABASE_URL."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = DATABASE_URL

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    try:
        async with connectable.connect() as connection:
            await connection.run_sync(do_run_migrations)
        logger.info("Migrations executed successfully")
    except Exception as e:
        logger.error(f"Error during migration execution: {e}", exc_info=True)
        raise
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    host = DATABASE_URL.split("@")[1] if "@" in DATABASE_URL else "configured"
    logger.info(f"Running migrations against {host}")
    asyncio.run(run_async_migrations())


async def upgrade_to_head() -> None:
    """Upgrade the configured database to the latest revision.

    command.upgrade is synchronous and starts its own event loop inside
    env.py, so it runs in a worker thread.
    """
    if not ALEMBIC_INI_PATH.exists():
        raise FileNotFoundError(f"Alembic config file not found: {ALEMBIC_INI_PATH}")

    alembic_cfg = alembic_config.Config(str(ALEMBIC_INI_PATH))
    alembic_cfg.set_main_option("script_location", str(Path(__file__).parent))
    await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
    logger.info("Database schema is at head")


if config is not None:
    try:
        if context.is_offline_mode():
            run_migrations_offline()
        else:
            run_migrations_online()
    except AttributeError:
        pass
