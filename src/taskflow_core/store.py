"""Relational store adapter.

Schema bootstrap for new and older databases, plus the transaction boundary
used by every write in :mod:`taskflow_core.crud`.

Schema creation is additive only: missing tables are created, columns added
by later releases are appended, and legacy values are rewritten to their
current form. Nothing is ever dropped, so running :func:`init_schema` on an
up-to-date database is a no-op.
"""
import logging
from contextlib import contextmanager
from typing import Iterator

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Base, ProjectStatus, ReportResult, Role
from .roles import get_staffing_table

logger = logging.getLogger("taskflow-core.store")

# SQLSTATE codes (PostgreSQL) for the integrity violations we translate
UNIQUE_VIOLATION_CODE = "23505"
FOREIGN_KEY_VIOLATION_CODE = "23503"

# SQLite reports constraint failures by message only
SQLITE_UNIQUE_PREFIXES = ("UNIQUE constraint failed", "PRIMARY KEY must be unique")
SQLITE_FOREIGN_KEY_PREFIX = "FOREIGN KEY constraint failed"

DEFAULT_DEPARTMENT_ID = 1

# Columns introduced after the first release: (table, column, DDL)
ADDED_COLUMNS: list[tuple[str, str, str]] = [
    ("projects", "status", "VARCHAR(16) NOT NULL DEFAULT 'Active'"),
    ("projects", "department_id", "INTEGER"),
    ("users", "department_id", "INTEGER"),
    ("users", "avatar_path", "VARCHAR(1024) NOT NULL DEFAULT ''"),
    ("reports", "result_status", "VARCHAR(32) NOT NULL DEFAULT 'fully complete'"),
]

# Values written by earlier releases, mapped to their current spelling
LEGACY_PROJECT_STATUSES = {
    "Активен": ProjectStatus.ACTIVE.value,
    "Закрыт": ProjectStatus.CLOSED.value,
}
LEGACY_REPORT_RESULTS = {
    "Завершено": ReportResult.FULLY_COMPLETE.value,
    "Завершено не полностью": ReportResult.PARTIALLY_COMPLETE.value,
    "Не завершено": ReportResult.NOT_COMPLETE.value,
}

# Lightweight table stubs for data fixes; plain strings, no enum coercion
_users = sa.table(
    "users",
    sa.column("role", sa.String),
    sa.column("department_id", sa.Integer),
    sa.column("avatar_path", sa.String),
)
_projects = sa.table(
    "projects",
    sa.column("status", sa.String),
    sa.column("department_id", sa.Integer),
)
_reports = sa.table("reports", sa.column("result_status", sa.String))
_departments = sa.table("departments", sa.column("id", sa.Integer), sa.column("name", sa.String))


class StoreError(Exception):
    """Raised when the database rejects an operation."""
    pass


class UniqueViolation(StoreError):
    """A unique or primary key constraint was violated."""
    pass


class ForeignKeyViolation(StoreError):
    """A foreign key constraint was violated."""
    pass


def classify_integrity_error(error: IntegrityError) -> StoreError:
    """
    Map a driver integrity error onto the store error hierarchy.

    A SQLSTATE code decides when the driver exposes one (PostgreSQL).
    Otherwise the SQLite message prefix is matched.

    Args:
        error: IntegrityError raised by SQLAlchemy

    Returns:
        UniqueViolation, ForeignKeyViolation or plain StoreError
    """
    orig = error.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig) if orig is not None else str(error)

    if code:
        if code == UNIQUE_VIOLATION_CODE:
            return UniqueViolation(message)
        if code == FOREIGN_KEY_VIOLATION_CODE:
            return ForeignKeyViolation(message)
        return StoreError(message)

    if message.startswith(SQLITE_UNIQUE_PREFIXES):
        return UniqueViolation(message)
    if message.startswith(SQLITE_FOREIGN_KEY_PREFIX):
        return ForeignKeyViolation(message)
    return StoreError(message)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one transaction.

    Commits when the block finishes, rolls back on any exception. Integrity
    errors come out as :class:`UniqueViolation` / :class:`ForeignKeyViolation`,
    other database errors as :class:`StoreError`; anything else is re-raised
    unchanged after the rollback.

    Usage::

        with atomic(db):
            db.execute(...)
    """
    try:
        yield db
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise classify_integrity_error(e) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error, transaction rolled back: {e}")
        raise StoreError(str(e)) from e
    except Exception:
        db.rollback()
        raise


def add_missing_columns(conn: Connection) -> list[str]:
    """
    Append columns that older databases lack.

    Returns:
        ``table.column`` names that were added
    """
    inspector = sa.inspect(conn)
    tables = set(inspector.get_table_names())
    added = []
    for table, column, ddl in ADDED_COLUMNS:
        if table not in tables:
            continue
        existing = {col["name"] for col in inspector.get_columns(table)}
        if column in existing:
            continue
        conn.execute(sa.text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
        added.append(f"{table}.{column}")
        logger.info(f"Added missing column {table}.{column}")
    return added


def backfill_defaults(conn: Connection) -> None:
    """Replace null, empty and legacy values with their current fallbacks."""
    conn.execute(
        sa.update(_projects)
        .where(sa.or_(_projects.c.status.is_(None), _projects.c.status == ""))
        .values(status=ProjectStatus.ACTIVE.value)
    )
    for legacy, current in LEGACY_PROJECT_STATUSES.items():
        conn.execute(sa.update(_projects).where(_projects.c.status == legacy).values(status=current))

    conn.execute(
        sa.update(_reports)
        .where(sa.or_(_reports.c.result_status.is_(None), _reports.c.result_status == ""))
        .values(result_status=ReportResult.FULLY_COMPLETE.value)
    )
    for legacy, current in LEGACY_REPORT_RESULTS.items():
        conn.execute(
            sa.update(_reports).where(_reports.c.result_status == legacy).values(result_status=current)
        )

    for table in (_users, _projects):
        conn.execute(
            sa.update(table)
            .where(sa.or_(table.c.department_id.is_(None), table.c.department_id == 0))
            .values(department_id=DEFAULT_DEPARTMENT_ID)
        )
    conn.execute(sa.update(_users).where(_users.c.avatar_path.is_(None)).values(avatar_path=""))

    # Role names were historically stored as typed; store the canonical spelling
    for role in Role:
        conn.execute(
            sa.update(_users)
            .where(sa.func.lower(_users.c.role) == role.value.lower())
            .where(_users.c.role != role.value)
            .values(role=role.value)
        )


def seed_departments(conn: Connection) -> None:
    """Insert the reference departments and keep their names current."""
    table = get_staffing_table()
    existing = dict(conn.execute(sa.select(_departments.c.id, _departments.c.name)).all())
    for dept_id, dept in sorted(table.departments.items()):
        if dept_id not in existing:
            conn.execute(sa.insert(_departments).values(id=dept_id, name=dept.name))
            logger.info(f"Seeded department {dept_id}: {dept.name}")
        elif existing[dept_id] != dept.name:
            conn.execute(
                sa.update(_departments).where(_departments.c.id == dept_id).values(name=dept.name)
            )
            logger.debug(f"Renamed department {dept_id} to {dept.name}")


def upgrade_schema(conn: Connection) -> None:
    """
    Bring the schema on ``conn`` up to date. Idempotent.

    Shared by application startup and the Alembic migration so both produce
    the same schema.
    """
    Base.metadata.create_all(bind=conn)
    add_missing_columns(conn)
    backfill_defaults(conn)
    seed_departments(conn)


def init_schema(engine: Engine) -> None:
    """Create or upgrade the schema in a single transaction."""
    with engine.begin() as conn:
        upgrade_schema(conn)
    logger.info("Database schema is up to date")
