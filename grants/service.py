"""
grants/service.py -- The access grant protocol surface.

AccessGrantService wires the store, issuer, validator, and verifier together
and exposes the five protocol operations:

    issue(...)                                   -> AccessGrant
    scan(token, scanner_user_id)                 -> ScanResult
    verify_code(token, scanner_user_id, code)    -> VerifyResult
    list_grants(GrantFilter)                     -> list[AccessGrant]
    revoke(grant_id, revoked_by)                 -> AccessGrant

The API routes call this and nothing lower. Tests build one around in-memory
stores and a pinned clock.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from core.clock import Clock, utcnow
from core.config import Settings, get_settings
from core.errors import NotFoundError
from directory.lookup import DirectoryLookup
from grants.issuer import GrantIssuer
from grants.models import AccessGrant, GrantFilter, GrantStatus, ScanResult, VerifyResult
from grants.policy import DepartmentSensitivityPolicy
from grants.store import GrantStore
from grants.validator import ScanValidator, effective_status
from grants.verifier import CodeVerifier

logger = logging.getLogger("fieldpass.grants")


class AccessGrantService:
    def __init__(
        self,
        store: GrantStore,
        lookup: DirectoryLookup,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.settings = settings or get_settings()
        self.clock = clock
        self.policy = DepartmentSensitivityPolicy(lookup.directory)
        self.issuer = GrantIssuer(store, lookup, self.policy, settings=self.settings, clock=clock)
        self.validator = ScanValidator(store, clock=clock)
        self.verifier = CodeVerifier(self.validator)

    # ------------------------------------------------------------------
    # Protocol operations
    # ------------------------------------------------------------------

    def issue(
        self,
        audit_id: str,
        auditor_id: str,
        dept_id: str,
        valid_from: Optional[datetime] = None,
        valid_to: Optional[datetime] = None,
        ttl_minutes: Optional[int] = None,
        issued_by: Optional[str] = None,
    ) -> AccessGrant:
        return self.issuer.issue(
            audit_id,
            auditor_id,
            dept_id,
            valid_from=valid_from,
            valid_to=valid_to,
            ttl_minutes=ttl_minutes,
            issued_by=issued_by,
        )

    def scan(self, token: str, scanner_user_id: str) -> ScanResult:
        return self.validator.scan(token, scanner_user_id)

    def verify_code(self, token: str, scanner_user_id: str, code: str) -> VerifyResult:
        return self.verifier.verify_code(token, scanner_user_id, code)

    def list_grants(self, filters: Optional[GrantFilter] = None) -> list[AccessGrant]:
        return self.store.list_grants(filters)

    def get_grant(self, grant_id: str) -> AccessGrant:
        grant = self.store.get_by_id(grant_id)
        if grant is None:
            raise NotFoundError(f"Grant {grant_id} not found")
        return grant

    def revoke(self, grant_id: str, revoked_by: Optional[str] = None) -> AccessGrant:
        """Revoke a grant. Idempotent: revoking a revoked grant returns it unchanged.

        Raises NotFoundError for an unknown grant_id.
        """
        changed = self.store.revoke(grant_id, revoked_by=revoked_by, at=self.clock())
        grant = self.get_grant(grant_id)
        if changed:
            logger.info("Revoked grant %s by=%s", grant_id, revoked_by)
        return grant

    # ------------------------------------------------------------------
    # Presentation helpers
    # ------------------------------------------------------------------

    def status_of(self, grant: AccessGrant) -> GrantStatus:
        return effective_status(grant, self.clock())

    def url_for(self, grant: AccessGrant) -> str:
        return self.issuer.url_for(grant)
