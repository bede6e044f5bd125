import logging
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

sys.path.append(str(Path(__file__).resolve().parents[2] / "backend"))

from db import DATABASE_URL, build_engine  # noqa: E402
from models import Base  # noqa: E402

logger = logging.getLogger("alembic.env")


def _configure(**options) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        # SQLite cannot ALTER constraints in place.
        render_as_batch=DATABASE_URL.startswith("sqlite"),
        **options,
    )


def run_offline() -> None:
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = build_engine(DATABASE_URL)
    logger.info("Migrating %s", engine.url.render_as_string(hide_password=True))
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
