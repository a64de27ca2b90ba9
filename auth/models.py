"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors grants/models.py
and directory/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/, grants/, directory/, or client/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Role vocabulary. lead_auditor issues grants; auditor holds them;
# auditee_owner is the department representative who scans them.
ROLES = ("admin", "lead_auditor", "auditor", "auditee_owner")
ISSUER_ROLES = ("admin", "lead_auditor")


@dataclass
class User:
    """An authenticated identity in FieldPass.

    The numeric id doubles as the identity referenced by grants: a grant's
    auditor_id and a scan's scanner_user_id are str(user.id).

    full_name and avatar_url are display-only and feed the scan workflow's
    name resolution.
    """

    username: str
    role: str  # one of ROLES
    id: int | None = None
    hashed_password: str | None = None
    full_name: str = ""
    avatar_url: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True
