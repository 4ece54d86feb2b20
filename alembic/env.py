from __future__ import annotations

import os, sys
from logging.config import fileConfig
from alembic import context
from sqlmodel import SQLModel

sys.path.append(os.getcwd())

from aprobaciones.config import settings
from aprobaciones.db import make_engine
from aprobaciones.logs import configure_logging
import aprobaciones.models  # noqa: F401  registra las tablas en SQLModel.metadata

config = context.config

if config.config_file_name:
    fileConfig(config.config_file_name)
else:
    configure_logging(settings.log_level)

# Sin alembic.ini: la URL siempre sale de DATABASE_URL
config.set_main_option("script_location", "alembic")
database_url = config.get_main_option("sqlalchemy.url") or settings.database_url

target_metadata = SQLModel.metadata
MOTOR_TABLES = {"workflow_definition", "workflow_instance", "history_event", "approval_delegation"}


def include_object(obj, name, type_, reflected, compare_to):
    # La BD puede ser compartida con el sistema anfitrión: solo se migran las tablas del motor
    if type_ == "table":
        return name in MOTOR_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        render_as_batch=database_url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=database_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = make_engine(database_url)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
