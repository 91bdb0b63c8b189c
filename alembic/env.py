"""
Alembic environment — migrates the database named by DATABASE_URL.
"""
from logging.config import fileConfig

from alembic import context

from growth_audit.config import DATABASE_URL
from growth_audit.database import Base, build_engine
from growth_audit.services.repository import MODELS  # noqa: F401 (registers every model)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=DATABASE_URL.replace('postgres://', 'postgresql://', 1),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = build_engine(DATABASE_URL)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
