from __future__ import annotations
from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context
import os, sys

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from backoffice.models.authz import Base  # noqa: E402
from backoffice.models import audit, category, payment, technician, ticket  # noqa: E402,F401

alembic_cfg = context.config
if alembic_cfg.config_file_name is not None:
    fileConfig(alembic_cfg.config_file_name)

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
alembic_cfg.set_main_option('sqlalchemy.url', DATABASE_URL)

# SQLite cannot ALTER most constraints in place
CONFIGURE_OPTS = {'target_metadata': Base.metadata, 'render_as_batch': True}


def migrate_offline():
    context.configure(url=DATABASE_URL, literal_binds=True, **CONFIGURE_OPTS)
    with context.begin_transaction():
        context.run_migrations()


def migrate_online():
    section = alembic_cfg.get_section(alembic_cfg.config_ini_section) or {'sqlalchemy.url': DATABASE_URL}
    engine = engine_from_config(section, prefix='sqlalchemy.', poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **CONFIGURE_OPTS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    migrate_offline()
else:
    migrate_online()
