"""
Alembic migration environment for RightSize AI.

Runs migrations against the Flask application's Flask-SQLAlchemy engine so
``flask db upgrade`` uses the same DATABASE_URL as the service.
"""

import logging
from logging.config import fileConfig

from flask import current_app

from alembic import context

# Register the metrics, cost and recommendation tables on the metadata
import rightsize_ai.core.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_db = current_app.extensions["sqlalchemy"]


def get_engine():
    """Get the database engine from Flask-SQLAlchemy."""
    return target_db.engine


def get_engine_url() -> str:
    """Render the engine URL for Alembic's config, escaping '%'."""
    return get_engine().url.render_as_string(hide_password=False).replace("%", "%%")


config.set_main_option("sqlalchemy.url", get_engine_url())


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_db.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations over a live connection."""

    def process_revision_directives(context, revision, directives):
        """Skip empty autogenerated revisions."""
        if getattr(config.cmd_opts, "autogenerate", False):
            script = directives[0]
            if script.upgrade_ops.is_empty():
                directives[:] = []
                logger.info("No changes in schema detected.")

    with get_engine().connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_db.metadata,
            process_revision_directives=process_revision_directives,
            **current_app.extensions["migrate"].configure_args,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
