"""
directory/store.py -- SQLAlchemy Core persistence for departments, sensitive areas, and audits.

Pattern: Repository + Data Mapper (same as grants/store.py).

Sensitive areas are stored one row per area, so "is this department
sensitive?" is a COUNT over department_sensitive_areas. Removing the last
area makes the department non-sensitive for FUTURE grants only; grants
already issued keep (or lack) their verify code.

DB path: directory/fieldpass_directory.db.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from core.clock import to_iso, utcnow
from directory.models import Audit, Department, SensitiveArea

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'fieldpass_directory.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_departments = Table(
    "departments",
    metadata,
    Column("dept_id", String(64), primary_key=True),
    Column("name", String(255), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
)

_sensitive_areas = Table(
    "department_sensitive_areas",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("dept_id", String(64), ForeignKey("departments.dept_id"), nullable=False, index=True),
    Column("area", String(255), nullable=False),
    Column("level", String(30), nullable=False, server_default=""),
    Column("default_notes", Text, nullable=False, server_default=""),
    Column("created_by", String(64)),
    Column("created_at", String(32), nullable=False),
)

_audits = Table(
    "audits",
    metadata,
    Column("audit_id", String(64), primary_key=True),
    Column("title", String(255), nullable=False),
    Column("start_date", String(10)),  # YYYY-MM-DD
    Column("end_date", String(10)),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class DirectoryStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Departments
    # ------------------------------------------------------------------

    def create_department(self, department: Department) -> str:
        """Insert a department and return its dept_id.

        Raises sqlalchemy.exc.IntegrityError if the id or name already exists.
        """
        dept_id = department.dept_id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(_departments.insert().values(dept_id=dept_id, name=department.name, created_at=to_iso(utcnow())))
            conn.commit()
        return dept_id

    def get_department(self, dept_id: str) -> Optional[Department]:
        """Return the department with its sensitive areas, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(_departments.select().where(_departments.c.dept_id == dept_id)).fetchone()
            if row is None:
                return None
            area_rows = conn.execute(
                _sensitive_areas.select().where(_sensitive_areas.c.dept_id == dept_id).order_by(_sensitive_areas.c.id)
            ).fetchall()
        return Department(
            dept_id=row.dept_id,
            name=row.name,
            created_at=row.created_at,
            sensitive_areas=[_row_to_area(r) for r in area_rows],
        )

    def list_departments(self) -> list[Department]:
        """Return all departments ordered by name, each with its sensitive areas."""
        with self.engine.connect() as conn:
            rows = conn.execute(_departments.select().order_by(_departments.c.name)).fetchall()
            area_rows = conn.execute(_sensitive_areas.select().order_by(_sensitive_areas.c.id)).fetchall()
        by_dept: dict[str, list[SensitiveArea]] = {}
        for r in area_rows:
            by_dept.setdefault(r.dept_id, []).append(_row_to_area(r))
        return [
            Department(
                dept_id=r.dept_id,
                name=r.name,
                created_at=r.created_at,
                sensitive_areas=by_dept.get(r.dept_id, []),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Sensitive areas
    # ------------------------------------------------------------------

    def add_sensitive_area(self, area: SensitiveArea) -> int:
        """Declare a sensitive area for a department and return its id."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sensitive_areas.insert().values(
                    dept_id=area.dept_id,
                    area=area.area,
                    level=area.level,
                    default_notes=area.default_notes,
                    created_by=area.created_by,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def remove_sensitive_area(self, dept_id: str, area_id: int) -> bool:
        """Delete one area. dept_id is part of the match so ids cannot cross departments."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sensitive_areas.delete().where(
                    (_sensitive_areas.c.id == area_id) & (_sensitive_areas.c.dept_id == dept_id)
                )
            )
            conn.commit()
        return result.rowcount > 0

    def count_sensitive_areas(self, dept_id: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_sensitive_areas).where(_sensitive_areas.c.dept_id == dept_id)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Audits
    # ------------------------------------------------------------------

    def create_audit(self, audit: Audit) -> str:
        audit_id = audit.audit_id or _new_id()
        with self.engine.connect() as conn:
            conn.execute(
                _audits.insert().values(
                    audit_id=audit_id,
                    title=audit.title,
                    start_date=audit.start_date,
                    end_date=audit.end_date,
                    created_at=to_iso(utcnow()),
                )
            )
            conn.commit()
        return audit_id

    def get_audit(self, audit_id: str) -> Optional[Audit]:
        with self.engine.connect() as conn:
            row = conn.execute(_audits.select().where(_audits.c.audit_id == audit_id)).fetchone()
        if row is None:
            return None
        return Audit(
            audit_id=row.audit_id,
            title=row.title,
            start_date=row.start_date,
            end_date=row.end_date,
            created_at=row.created_at,
        )

    def close(self) -> None:
        self.engine.dispose()


def _row_to_area(row) -> SensitiveArea:
    return SensitiveArea(
        id=row.id,
        dept_id=row.dept_id,
        area=row.area,
        level=row.level,
        default_notes=row.default_notes,
        created_by=row.created_by,
        created_at=row.created_at,
    )
