"""Migrations for the contas schema: recurrence_series, bills and bill_links.

The database URL comes from ``sqlalchemy.url`` when set on the Alembic config
(``initialize_db`` leaves it unset) and otherwise from ``CONTAS_DB_URL``.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from contas.settings import settings

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _db_url() -> str:
    return config.get_main_option("sqlalchemy.url") or settings.db_url


def run_migrations_offline() -> None:
    context.configure(
        url=_db_url(),
        target_metadata=None,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_db_url(), poolclass=pool.NullPool)

    with engine.connect() as connection:
        # SQLite cannot ALTER constraints in place.
        context.configure(
            connection=connection,
            target_metadata=None,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
