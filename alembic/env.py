"""
Alembic environment for the wallet ledger schema

The connection comes from DatabaseSettings (DB_* variables, .env in the
project root); the URL in alembic.ini is only a placeholder.
"""
import asyncio
import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

env_file_path = project_root / ".env"
if env_file_path.exists():
    load_dotenv(env_file_path, override=False)

from settings import DatabaseSettings  # noqa: E402
from db import Base  # noqa: E402
from db.models import User, WalletTransaction  # noqa: E402,F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

db_settings = DatabaseSettings()
config.set_main_option("sqlalchemy.url", db_settings.url.replace("%", "%%"))

if db_settings.dsn:
    logger.info("Migrating database from DSN at %s", db_settings.dsn.split("@")[-1])
else:
    logger.info(
        "Migrating database %s on %s:%s as %s",
        db_settings.database, db_settings.host, db_settings.port, db_settings.user
    )

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        **kwargs
    )


def run_migrations_offline() -> None:
    """Emit the migration SQL without a database connection"""
    _configure(
        url=db_settings.url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations over the async driver"""
    connectable = create_async_engine(db_settings.async_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
