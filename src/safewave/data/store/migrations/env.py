from alembic import context
from sqlalchemy import engine_from_config, pool

from safewave.data.store.model import Base

config = context.config
target_metadata = Base.metadata


def run_migrations(connection):
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=True,
        transaction_per_migration=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    # the store hands over its own connection; the alembic CLI builds one from the url
    connection = config.attributes.get('connection')
    if connection is not None:
        run_migrations(connection)
        return

    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        run_migrations(connection)


if context.is_offline_mode():
    raise RuntimeError('Revisions inspect the live schema; offline (--sql) mode is not supported')
run_migrations_online()
