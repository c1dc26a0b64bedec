"""
Alembic environment for the milguard schema.

The database URL is resolved exactly like the application does it
(milguard.db.base), so ``alembic upgrade head`` and the API always point
at the same database. SQLite runs in batch mode because it cannot ALTER
most column definitions in place.
"""
from logging.config import fileConfig

from sqlalchemy import pool

from alembic import context

from milguard.db.base import Base, build_database_url, make_engine
from milguard.auth import models as _auth_models  # noqa: F401
from milguard.analysis import models as _analysis_models  # noqa: F401
from milguard.learning import models as _learning_models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

DATABASE_URL = build_database_url()
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": IS_SQLITE,
    }


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    context.configure(
        url=DATABASE_URL,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(DATABASE_URL, poolclass=pool.NullPool)
    print(f"[DB] migrating {engine.url.render_as_string(hide_password=True)}", flush=True)

    with engine.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
