from __future__ import annotations

import logging

from sqlalchemy import inspect, text

import models  # noqa: F401
from db import Base

_log = logging.getLogger("schema")


def _quoted(name: str) -> str:
    return '"' + str(name).replace('"', '""') + '"'


def _ensure_column(engine, *, table: str, column: str, ddl_type: str, default_sql: str | None = None) -> bool:
    insp = inspect(engine)
    cols = {c.get("name") for c in insp.get_columns(table)}
    if column in cols:
        return False
    ddl = f"ALTER TABLE {_quoted(table)} ADD COLUMN {_quoted(column)} {ddl_type}"
    if default_sql is not None:
        ddl += f" DEFAULT {default_sql}"
    with engine.begin() as conn:
        conn.execute(text(ddl))
    _log.info("schema: added %s.%s", table, column)
    return True


def _ensure_index(engine, *, name: str, table: str, columns: list[str]) -> None:
    cols = ", ".join(_quoted(c) for c in columns)
    ddl = f"CREATE INDEX IF NOT EXISTS {_quoted(name)} ON {_quoted(table)}({cols})"
    with engine.begin() as conn:
        conn.execute(text(ddl))


def ensure_schema(engine) -> None:
    """
    Lightweight, idempotent schema evolution (no Alembic).

    Creates missing tables, then adds columns introduced after the first
    release to databases created before them.
    """

    Base.metadata.create_all(bind=engine)

    # Trainee status tracking on enrollments.
    added_status = _ensure_column(engine, table="user_batch_processes", column="traineeStatus", ddl_type="VARCHAR")
    _ensure_column(
        engine, table="user_batch_processes", column="isManualStatus", ddl_type="BOOLEAN", default_sql="FALSE"
    )
    if added_status:
        _initialize_trainee_status(engine)

    # Refresher events carry a reason.
    _ensure_column(engine, table="batch_events", column="refresherReason", ddl_type="TEXT")

    # Working-day scheduling inputs on batches.
    _ensure_column(
        engine,
        table="organization_batches",
        column="weeklyOffDaysJson",
        ddl_type="TEXT",
        default_sql="'[\"Saturday\", \"Sunday\"]'",
    )
    _ensure_column(
        engine, table="organization_batches", column="considerHolidays", ddl_type="BOOLEAN", default_sql="TRUE"
    )

    _ensure_index(engine, name="ix_ubp_batch_manual", table="user_batch_processes", columns=["batchId", "isManualStatus"])
    _ensure_index(engine, name="ix_batch_history_batch_date", table="batch_history", columns=["batchId", "date"])


def _initialize_trainee_status(engine) -> None:
    sql = (
        'UPDATE "user_batch_processes" SET "traineeStatus" = ('
        'SELECT b."status" FROM "organization_batches" b WHERE b."id" = "user_batch_processes"."batchId"'
        ') WHERE "traineeStatus" IS NULL'
    )
    with engine.begin() as conn:
        res = conn.execute(text(sql))
    _log.info("schema: initialized traineeStatus rows=%s", res.rowcount)
