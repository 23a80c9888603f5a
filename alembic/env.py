"""
Alembic environment for the Calcula schema.

Tables come from Base.metadata (create_all on startup); revisions here only
carry data fixes and constraints that create_all cannot add to existing tables.
The URL comes from DATABASE_URL through calcula.core.config.
"""
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from calcula.core.config import DATABASE_URL
from calcula.db.base import Base
import calcula.models  # noqa: F401

config = context.config
target_metadata = Base.metadata

if config.config_file_name is not None:
    # Keep the app's loggers alive when migrations run at startup
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def resolve_url() -> str:
    return DATABASE_URL or config.get_main_option("sqlalchemy.url")


def run_migrations_offline() -> None:
    context.configure(
        url=resolve_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = resolve_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
