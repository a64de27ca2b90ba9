"""
directory/lookup.py -- Read-only facade over the identity collaborators.

The grant issuer needs "does this audit / auditor / department exist?" and the
scan workflow needs display names. Both go through the same three methods:

    get_audit(audit_id)       -> Audit | None
    get_auditor(auditor_id)   -> AuditorProfile | None
    get_department(dept_id)   -> Department | None

client/api.py's ApiClient exposes the same three methods over HTTP, so the
workflow accepts either one.

Auditors are users. The user store is passed in rather than imported so
directory/ stays free of auth/ imports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from directory.models import Audit, AuditorProfile, Department
from directory.store import DirectoryStore

if TYPE_CHECKING:
    from auth.store import UserStore


class DirectoryLookup:
    def __init__(self, directory: DirectoryStore, users: UserStore) -> None:
        self.directory = directory
        self.users = users

    def get_audit(self, audit_id: str) -> Optional[Audit]:
        return self.directory.get_audit(audit_id)

    def get_department(self, dept_id: str) -> Optional[Department]:
        return self.directory.get_department(dept_id)

    def get_auditor(self, auditor_id: str) -> Optional[AuditorProfile]:
        """Resolve an auditor id (str(user.id)) to a profile. Inactive users count as missing."""
        if not auditor_id.isdigit():
            return None
        user = self.users.get_by_id(int(auditor_id))
        if user is None or not user.is_active:
            return None
        return AuditorProfile(
            auditor_id=auditor_id,
            display_name=user.full_name or user.username,
            avatar_url=user.avatar_url,
        )
