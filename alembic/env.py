"""Alembic runner. Revisions are raw SQL, so there is no target metadata."""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from autodonate import config as app_config

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)

url = app_config.sqlalchemy_url()

if context.is_offline_mode():
    context.configure(url=url, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()
else:
    engine = create_engine(url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()
