"""
grants/store.py -- SQLAlchemy Core persistence layer for access grants.

Pattern: Repository + Data Mapper (same as directory/store.py and auth/store.py).
GrantStore is the repository; _row_to_grant is the mapper. Issuer, validator
and route code never touch SQL directly.

Lifecycle rules enforced here:
  - Grants are never deleted. There is no delete method.
  - The token column is UNIQUE, so a token value can never be issued twice,
    even after the original grant is revoked or expired.
  - The only update to an existing row is Active -> Revoked, applied as a
    single conditional UPDATE so a concurrent read sees either state, never
    a partial one. Revoking twice is a no-op.
  - Expiry is never written. The status column only holds Active or Revoked.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: grants/fieldpass_grants.db (sibling to directory/fieldpass_directory.db).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, Index, MetaData, String, Table, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.clock import parse_iso, to_iso, utcnow
from grants.models import AccessGrant, GrantFilter, GrantStatus

logger = logging.getLogger("fieldpass.grants.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'fieldpass_grants.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_grants = Table(
    "access_grants",
    metadata,
    Column("grant_id", String(36), primary_key=True),
    Column("audit_id", String(64), nullable=False),
    Column("auditor_id", String(64), nullable=False),
    Column("dept_id", String(64), nullable=False),
    Column("token", String(128), nullable=False, unique=True),
    Column("verify_code", String(16)),  # NULL = department not sensitive at issuance
    Column("valid_from", String(32), nullable=False),  # ISO 8601, UTC, microseconds
    Column("valid_to", String(32), nullable=False),
    Column("status", String(16), nullable=False, server_default=GrantStatus.ACTIVE.value),
    Column("created_at", String(32), nullable=False),
    Column("issued_by", String(64)),
    Column("revoked_at", String(32)),
    Column("revoked_by", String(64)),
    Index("ix_access_grants_triple", "audit_id", "auditor_id", "dept_id"),
    Index("ix_access_grants_dept", "dept_id"),
    Index("ix_access_grants_auditor", "auditor_id"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so scans read without blocking on issuance writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class GrantStore:
    """Repository for AccessGrant records.

    Usage:
        store = GrantStore()
        saved = store.create_grant(grant)
        same = store.get_by_token(saved.token)
        store.revoke(saved.grant_id, revoked_by="1")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # TestClient and uvicorn run sync handlers in a thread pool.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_grant(self, grant: AccessGrant, supersede: bool = False) -> AccessGrant:
        """Insert a new grant and return it with grant_id and created_at assigned.

        supersede=True revokes every other non-revoked grant for the same
        (audit_id, auditor_id, dept_id) triple in the same transaction as the
        insert, so no reader ever sees two live grants from one issuance.

        Raises sqlalchemy.exc.IntegrityError if the token already exists.
        The issuer treats that as a collision and regenerates.
        """
        grant_id = grant.grant_id or str(uuid.uuid4())
        created_at = grant.created_at or utcnow()
        with self.engine.begin() as conn:
            if supersede:
                conn.execute(
                    _grants.update()
                    .where(
                        (_grants.c.audit_id == grant.audit_id)
                        & (_grants.c.auditor_id == grant.auditor_id)
                        & (_grants.c.dept_id == grant.dept_id)
                        & (_grants.c.status != GrantStatus.REVOKED.value)
                    )
                    .values(
                        status=GrantStatus.REVOKED.value,
                        revoked_at=to_iso(created_at),
                        revoked_by=grant.issued_by,
                    )
                )
            conn.execute(
                _grants.insert().values(
                    grant_id=grant_id,
                    audit_id=grant.audit_id,
                    auditor_id=grant.auditor_id,
                    dept_id=grant.dept_id,
                    token=grant.token,
                    verify_code=grant.verify_code,
                    valid_from=to_iso(grant.valid_from),
                    valid_to=to_iso(grant.valid_to),
                    status=GrantStatus.ACTIVE.value,
                    created_at=to_iso(created_at),
                    issued_by=grant.issued_by,
                )
            )
        saved = self.get_by_id(grant_id)
        if saved is None:
            raise RuntimeError(f"grant {grant_id} missing after insert")
        return saved

    def revoke(self, grant_id: str, revoked_by: Optional[str] = None, at: Optional[datetime] = None) -> bool:
        """Mark a grant Revoked. Returns True only if this call made the transition.

        The status guard in the WHERE clause makes the operation atomic and
        idempotent: a second revoke matches zero rows and leaves revoked_at /
        revoked_by from the first call untouched.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _grants.update()
                .where((_grants.c.grant_id == grant_id) & (_grants.c.status != GrantStatus.REVOKED.value))
                .values(
                    status=GrantStatus.REVOKED.value,
                    revoked_at=to_iso(at or utcnow()),
                    revoked_by=revoked_by,
                )
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, grant_id: str) -> AccessGrant | None:
        with self.engine.connect() as conn:
            row = conn.execute(_grants.select().where(_grants.c.grant_id == grant_id)).fetchone()
        return _row_to_grant(row) if row is not None else None

    def get_by_token(self, token: str) -> AccessGrant | None:
        """Exact, case-sensitive token lookup. O(1) via the UNIQUE index."""
        with self.engine.connect() as conn:
            row = conn.execute(_grants.select().where(_grants.c.token == token)).fetchone()
        return _row_to_grant(row) if row is not None else None

    def list_grants(self, filters: GrantFilter | None = None) -> list[AccessGrant]:
        """Return grants matching every supplied filter, newest first.

        Newest-first ordering is what makes "the newest grant is authoritative"
        usable for callers when overlapping grants are allowed.
        """
        filters = filters or GrantFilter()
        query = _grants.select()
        if filters.audit_id is not None:
            query = query.where(_grants.c.audit_id == filters.audit_id)
        if filters.dept_id is not None:
            query = query.where(_grants.c.dept_id == filters.dept_id)
        if filters.auditor_id is not None:
            query = query.where(_grants.c.auditor_id == filters.auditor_id)
        query = query.order_by(_grants.c.created_at.desc(), _grants.c.grant_id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_grant(r) for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except SQLAlchemyError as exc:
            logger.warning("Grant store ping failed: %s", exc)
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_grant(row) -> AccessGrant:
    return AccessGrant(
        grant_id=row.grant_id,
        audit_id=row.audit_id,
        auditor_id=row.auditor_id,
        dept_id=row.dept_id,
        token=row.token,
        verify_code=row.verify_code,
        valid_from=parse_iso(row.valid_from),
        valid_to=parse_iso(row.valid_to),
        status=GrantStatus(row.status),
        created_at=parse_iso(row.created_at),
        issued_by=row.issued_by,
        revoked_at=parse_iso(row.revoked_at) if row.revoked_at else None,
        revoked_by=row.revoked_by,
    )
