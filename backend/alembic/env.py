"""
Alembic migration environment for the reservation schema.

The database URL comes from settings (DATABASE_URL_SYNC) unless overridden
on the command line, e.g. for a scratch SQLite copy:

    alembic -x dburl=sqlite:///scratch.db upgrade head

Money columns are Numeric and statuses carry server defaults, so autogenerate
compares types and server defaults too. SQLite cannot ALTER constraints in
place; batch mode is switched on for it.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, make_url, pool

from venue_booking.core.config import get_settings
from venue_booking.db.base import Base
from venue_booking.models import Booking, Coach, Equipment, Payment, Tariff, Venue  # noqa: F401 - register tables

config = context.config


def database_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("dburl")
    return override or get_settings().DATABASE_URL_SYNC


config.set_main_option("sqlalchemy.url", database_url())

if config.config_file_name is not None:
    # Keep application loggers alive when migrations run in-process
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def configure_options(dialect_name: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "compare_server_default": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_migrations_offline() -> None:
    """Emit SQL for review instead of touching a database."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_options(make_url(url).get_backend_name()),
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
        context.configure(connection=connection, **configure_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
