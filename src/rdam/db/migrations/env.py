"""Alembic migration environment configuration.

This module configures how Alembic runs migrations:
- Loads SQLAlchemy models for autogenerate support
- Configures database connection from environment
- Supports both online and offline migration modes
"""

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import create_engine, pool

# Import all models to register them with metadata
from rdam.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _include_object(
    _obj: Any,
    _name: str | None,
    _type: str,
    _reflected: bool,
    _compare_to: Any | None,
) -> bool:
    """Include all objects in autogenerate comparisons."""
    return True


def get_url() -> str:
    """Get database URL from environment or config.

    Priority:
    1. RDAM_DATABASE__URL environment variable
    2. sqlalchemy.url from alembic.ini

    Migrations run on the synchronous psycopg driver.
    """
    url = os.environ.get("RDAM_DATABASE__URL", config.get_main_option("sqlalchemy.url", ""))
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Generates SQL script without connecting to database.
    """
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=_include_object,
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    # NullPool ensures connections are closed immediately after use
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=_include_object,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
