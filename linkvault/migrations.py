"""Versioned schema migrations.

Each migration is applied once, in order, inside its own transaction, and
recorded in ``schema_version``. Run at application startup and by
``migrate_db.py``.

Only databases created by earlier releases of this package are upgraded.
Other layouts for a ``contents`` table are not recognized or converted.
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, inspect, select
from sqlalchemy.engine import Connection, Engine

from linkvault import models

logger = logging.getLogger(__name__)

version_metadata = MetaData()

schema_version = Table(
    "schema_version",
    version_metadata,
    Column("version", Integer, primary_key=True),
    Column("name", String, nullable=False),
    Column("applied_at", DateTime, nullable=False),
)


def _create_core_tables(conn: Connection) -> None:
    for table in (models.User.__table__, models.UserSession.__table__, models.Content.__table__):
        table.create(bind=conn, checkfirst=True)


def _add_missing_content_columns(conn: Connection) -> None:
    # databases created before view limits and file metadata were tracked
    existing = {column["name"] for column in inspect(conn).get_columns("contents")}
    for column in models.Content.__table__.columns:
        if column.name in existing:
            continue
        column_type = column.type.compile(dialect=conn.dialect)
        default = " DEFAULT 0" if column.name in ("view_count", "one_time") else ""
        conn.exec_driver_sql(f"ALTER TABLE contents ADD COLUMN {column.name} {column_type}{default}")
        logger.info("Added column contents.%s", column.name)


MIGRATIONS: list[tuple[int, str, Callable[[Connection], None]]] = [
    (1, "create core tables", _create_core_tables),
    (2, "add missing content columns", _add_missing_content_columns),
]


def current_version(engine: Engine) -> int:
    with engine.connect() as conn:
        if not inspect(conn).has_table(schema_version.name):
            return 0
        versions = conn.execute(select(schema_version.c.version)).scalars().all()
    return max(versions, default=0)


def apply_migrations(engine: Engine) -> list[int]:
    """Apply pending migrations and return the versions that ran."""
    version_metadata.create_all(bind=engine)
    applied = []
    start = current_version(engine)
    for version, name, migrate in MIGRATIONS:
        if version <= start:
            continue
        with engine.begin() as conn:
            migrate(conn)
            conn.execute(
                schema_version.insert().values(version=version, name=name, applied_at=datetime.utcnow())
            )
        logger.info("Applied migration %d: %s", version, name)
        applied.append(version)
    return applied
