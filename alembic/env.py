from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context
import os
import sys

# Добавляем путь к src
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from src.config.settings import get_settings  # noqa
from src.database.models import Base  # noqa

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def get_url():
    # DATABASE_URL из окружения или .env (через Settings)
    url = os.getenv('DATABASE_URL') or get_settings().DATABASE_URL
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    # Alembic работает синхронно: asyncpg -> psycopg2, aiosqlite -> pysqlite
    if '+asyncpg' in url:
        url = url.replace('+asyncpg', '+psycopg2')
    if '+aiosqlite' in url:
        url = url.replace('+aiosqlite', '')
    return url


target_metadata = Base.metadata


def run_migrations_offline():
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    connectable = engine_from_config(
        {},
        prefix='sqlalchemy.',
        url=get_url(),
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
