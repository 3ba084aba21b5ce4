"""
alembic/env.py — Alembic migration environment for the archive schema.

Connection details come from the same DB_* variables the archiver uses
(s3_archive.db.build_dsn), loaded from .env when running locally.

Alembic runs synchronously, so the asyncpg DSN is rewritten for psycopg2.
There is no declarative metadata: migrations are written by hand.
"""
from logging.config import fileConfig
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy import engine_from_config, pool

from alembic import context

load_dotenv(Path(__file__).parent.parent / ".env")

from s3_archive.db import build_dsn  # noqa: E402

config = context.config
config.set_main_option(
    "sqlalchemy.url", build_dsn().replace("postgresql://", "postgresql+psycopg2://", 1)
)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = None


def run_migrations_offline() -> None:
    """Emit the migration SQL to stdout instead of running it."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
