"""Alembic environment for the spend_reports tables.

The database URL comes from ``Settings.database_url`` (``DATABASE_URL``).
Online runs go through an async engine, offline runs emit plain SQL.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from logging.config import fileConfig
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

if TYPE_CHECKING:
    from sqlalchemy import MetaData
    from sqlalchemy.engine import Connection

SRC_DIR = Path(__file__).resolve().parents[1] / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")


def _project_metadata() -> tuple[MetaData, str]:
    from spend_reports.core.settings import get_settings
    from spend_reports.db.base import Base, import_orm_models

    import_orm_models()
    return Base.metadata, get_settings().database_url


target_metadata, database_url = _project_metadata()


def _masked(url: str) -> str:
    return make_url(url).render_as_string(hide_password=True)


def run_migrations_offline() -> None:
    logger.info("migrations_offline", extra={"url": _masked(database_url)})
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = create_async_engine(database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate)
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    logger.info("migrations_online", extra={"url": _masked(database_url)})
    asyncio.run(_migrate_online())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
