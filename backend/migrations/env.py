from logging.config import fileConfig
import os

from alembic import context
from sqlmodel import SQLModel

from organizador import models  # noqa: F401
from organizador.db import build_engine, engine as app_engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def _database_url():
    """``-x url=...`` wins over DATABASE_URL; ``None`` means the app engine."""
    return context.get_x_argument(as_dictionary=True).get("url") or os.getenv("DATABASE_URL")


def run_migrations_offline():
    url = _database_url() or config.get_main_option("sqlalchemy.url") or str(app_engine.url)
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    url = _database_url()
    connectable = build_engine(url) if url else app_engine
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()
    if connectable is not app_engine:
        connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
