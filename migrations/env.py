from logging.config import fileConfig
import logging
import os
import sys

from alembic import context
from sqlalchemy import create_engine, pool

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)
logger = logging.getLogger("alembic.env")

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
from barsan_api.config import Config
from barsan_api.extensions import db
import barsan_api.models  # noqa: F401  registers the tables on db.metadata

target_metadata = db.metadata


def database_url() -> str:
    """Same resolution as the app: DATABASE_URL, else the local SQLite file."""
    return Config.SQLALCHEMY_DATABASE_URI


def _options(url: str) -> dict:
    # SQLite cannot ALTER constraints in place
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
        "process_revision_directives": _skip_empty_autogenerate,
    }


def _skip_empty_autogenerate(context_, revision, directives):
    if getattr(context.config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []
        logger.info("No schema changes detected.")


def run_migrations_offline() -> None:
    url = database_url()
    context.configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"}, **_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = database_url()
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_options(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
