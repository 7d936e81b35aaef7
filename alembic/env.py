"""Alembic environment: orgsite settings supply DATABASE_URL, orgsite models supply metadata."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

# Settings need both JWT secrets; migrations never sign tokens, so fill placeholders if absent.
os.environ.setdefault("APP_ENV", "dev")
os.environ.setdefault("JWT_ACCESS_SECRET", "alembic-unused-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "alembic-unused-refresh-secret")

from orgsite.core.config import settings
from orgsite.models import Base

# Import all models so that Base.metadata contains every table.
from orgsite.models import AuthSession, Avatar, User  # noqa: F401

config = context.config
# alembic.ini logging sections are optional; fileConfig raises KeyError when they are missing.
if config.config_file_name is not None:
    try:
        fileConfig(config.config_file_name)
    except KeyError:
        pass

target_metadata = Base.metadata


def get_url() -> str:
    """Database URL: `alembic -x url=...` wins over DATABASE_URL."""
    return context.get_x_argument(as_dictionary=True).get("url") or settings.DATABASE_URL


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Connect and apply migrations."""
    connectable = create_engine(get_url(), poolclass=NullPool)
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
