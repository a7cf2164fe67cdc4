import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config
from sqlalchemy import pool

from alembic import context

from catalog_api import models  # noqa: F401  registers the tables on Base
from catalog_api.database import Base

config = context.config
fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url():
    # migrations run on the sync driver: postgresql+asyncpg -> postgresql (psycopg2)
    url = os.environ.get('CATALOG_DATABASE_URL')
    if url:
        return url.replace('+asyncpg', '').replace('+aiosqlite', '')
    return config.get_main_option('sqlalchemy.url')


def run_migrations_offline():
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    configuration = config.get_section(config.config_ini_section)
    configuration['sqlalchemy.url'] = get_url()

    connectable = engine_from_config(
        configuration,
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
