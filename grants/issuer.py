"""
grants/issuer.py -- Creates access grants.

Issuance steps, in order:
  1. Identifier check   -- audit_id, auditor_id, dept_id must be non-empty.
  2. Window resolution  -- ttl_minutes (if given) overrides valid_to; a missing
                           valid_to falls back to the configured default TTL.
  3. Window check       -- valid_from must be strictly before valid_to.
  4. Existence check    -- audit, auditor, and department must resolve through
                           the directory lookup.
  5. Sensitivity        -- DepartmentSensitivityPolicy decides, once, whether
                           the grant carries a verify code.
  6. Write              -- one insert into the grant store (plus the supersede
                           revocation in the same transaction when that
                           overlap policy is configured).

Steps 1-4 raise ValidationError / NotFoundError. Nothing is written on failure
and nothing is retried; the caller corrects the input and re-issues.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError

from core.clock import Clock, ensure_utc, utcnow
from core.config import Settings, get_settings
from core.errors import NotFoundError, ValidationError
from directory.lookup import DirectoryLookup
from grants.models import AccessGrant
from grants.policy import DepartmentSensitivityPolicy
from grants.store import GrantStore

logger = logging.getLogger("fieldpass.grants.issuer")

# token_urlsafe(32) -> 43 URL-safe chars, 256 bits of entropy
_TOKEN_BYTES = 32
# A UNIQUE collision at 256 bits means something is badly wrong with the RNG;
# a couple of retries is plenty.
_MAX_TOKEN_ATTEMPTS = 3


def generate_grant_token() -> str:
    return secrets.token_urlsafe(_TOKEN_BYTES)


def generate_verify_code(length: int) -> str:
    """Return a fixed-length numeric code from the OS CSPRNG.

    Uniqueness across grants is best-effort (10**length values); the code is
    only ever compared against its own grant.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def grant_url(token: str, base_url: str) -> str:
    """Return the client-presentable URL encoded into the scannable credential."""
    return f"{base_url.rstrip('/')}/verify/{token}"


class GrantIssuer:
    def __init__(
        self,
        store: GrantStore,
        lookup: DirectoryLookup,
        policy: DepartmentSensitivityPolicy,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.lookup = lookup
        self.policy = policy
        self.settings = settings or get_settings()
        self.clock = clock

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
        """Issue a new grant for (audit_id, auditor_id, dept_id).

        valid_from defaults to now. ttl_minutes, when supplied, recomputes
        valid_to = valid_from + ttl_minutes and takes precedence over an
        explicit valid_to.

        Raises:
            ValidationError: missing identifier, non-positive TTL, or
                valid_from not strictly before valid_to.
            NotFoundError: audit, auditor, or department does not exist.
        """
        audit_id = (audit_id or "").strip()
        auditor_id = (auditor_id or "").strip()
        dept_id = (dept_id or "").strip()
        missing = [
            name
            for name, value in (("audit_id", audit_id), ("auditor_id", auditor_id), ("dept_id", dept_id))
            if not value
        ]
        if missing:
            raise ValidationError(f"Missing required identifier(s): {', '.join(missing)}")

        if ttl_minutes is not None and ttl_minutes <= 0:
            raise ValidationError("ttl_minutes must be a positive number of minutes")
        try:
            start = ensure_utc(valid_from) if valid_from is not None else self.clock()
            if ttl_minutes is not None:
                end = start + timedelta(minutes=ttl_minutes)
            elif valid_to is not None:
                end = ensure_utc(valid_to)
            else:
                end = start + timedelta(minutes=self.settings.default_grant_ttl_minutes)
        except (OverflowError, ValueError) as exc:
            raise ValidationError("valid_from/valid_to out of range") from exc
        if start >= end:
            raise ValidationError("valid_from must be earlier than valid_to")

        if self.lookup.get_audit(audit_id) is None:
            raise NotFoundError(f"Audit {audit_id} not found")
        if self.lookup.get_auditor(auditor_id) is None:
            raise NotFoundError(f"Auditor {auditor_id} not found")
        if self.lookup.get_department(dept_id) is None:
            raise NotFoundError(f"Department {dept_id} not found")

        sensitive = self.policy.is_sensitive(dept_id)
        verify_code = generate_verify_code(self.settings.verify_code_length) if sensitive else None
        supersede = self.settings.grant_overlap_policy == "supersede"

        attempt = 0
        while True:
            attempt += 1
            grant = AccessGrant(
                audit_id=audit_id,
                auditor_id=auditor_id,
                dept_id=dept_id,
                token=generate_grant_token(),
                verify_code=verify_code,
                valid_from=start,
                valid_to=end,
                created_at=self.clock(),
                issued_by=issued_by,
            )
            try:
                saved = self.store.create_grant(grant, supersede=supersede)
            except IntegrityError:
                if attempt >= _MAX_TOKEN_ATTEMPTS:
                    raise
                logger.warning("Token collision on issuance attempt %d; regenerating", attempt)
                continue
            break

        logger.info(
            "Issued grant %s audit=%s auditor=%s dept=%s window=%s..%s sensitive=%s by=%s",
            saved.grant_id,
            audit_id,
            auditor_id,
            dept_id,
            saved.valid_from.isoformat(),
            saved.valid_to.isoformat(),
            sensitive,
            issued_by,
        )
        return saved

    def url_for(self, grant: AccessGrant) -> str:
        return grant_url(grant.token, self.settings.public_base_url)
