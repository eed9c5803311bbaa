"""
Alembic environment for the passwordless auth service.

Migrations run on a synchronous engine. The URL comes from DATABASE_URL_SYNC,
or is derived from DATABASE_URL by dropping the async driver suffix.
"""

from logging.config import fileConfig

from alembic import context  # type: ignore[attr-defined]
from sqlalchemy import create_engine, pool

from passwordless.core.config import Settings, get_settings
from passwordless.models import Base  # registers every table on Base.metadata

ASYNC_DRIVERS = {
    "postgresql+asyncpg://": "postgresql://",
    "sqlite+aiosqlite://": "sqlite://",
}

config = context.config
if config.config_file_name:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def migration_url(settings: Settings) -> str:
    if settings.database_url_sync:
        return settings.database_url_sync
    for async_prefix, sync_prefix in ASYNC_DRIVERS.items():
        if settings.database_url.startswith(async_prefix):
            return sync_prefix + settings.database_url[len(async_prefix):]
    raise RuntimeError("Set DATABASE_URL_SYNC to run migrations")


def run_migrations_offline(url: str) -> None:
    """Emit SQL to stdout instead of executing it."""
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online(url: str) -> None:
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


url = migration_url(get_settings())
config.set_main_option("sqlalchemy.url", url)

if context.is_offline_mode():
    run_migrations_offline(url)
else:
    run_migrations_online(url)
