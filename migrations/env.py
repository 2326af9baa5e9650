from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from quotation_engine.db_migrations import to_sqlalchemy_url


config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Schema is raw SQL (quotation_engine.db); no SQLAlchemy models to autogenerate from.
target_metadata = None


def _database_url() -> str:
    # The url set by `flask db` wins; DATABASE_URL covers plain `alembic` invocations.
    return to_sqlalchemy_url(config.get_main_option("sqlalchemy.url") or os.environ.get("DATABASE_URL"))


def run_migrations_online() -> None:
    section = dict(config.get_section(config.config_ini_section) or {})
    section["sqlalchemy.url"] = _database_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool, future=True)

    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    # The baseline revision executes the schema through a live connection.
    raise RuntimeError("Migrations offline (--sql) nao sao suportadas; use `flask db upgrade`.")

run_migrations_online()
