"""
grants/models.py -- Domain dataclasses for the access grant protocol.

These are pure data containers. Lifecycle rules (computed expiry, revocation,
window evaluation) live in grants/validator.py; persistence lives in
grants/store.py.

Separation of concerns: these dataclasses are the protocol's domain truth.
api/models.py owns the HTTP contract and maps to and from these.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class GrantStatus(str, Enum):
    """Reported lifecycle state of a grant.

    Only ACTIVE and REVOKED are ever written to the store. EXPIRED is derived
    from valid_to at read time.
    """

    ACTIVE = "Active"
    EXPIRED = "Expired"
    REVOKED = "Revoked"


class ScanReason(str, Enum):
    INVALID = "Invalid"
    NOT_YET_VALID = "NotYetValid"
    EXPIRED = "Expired"
    CODE_MISMATCH = "CodeMismatch"


# One distinct message per reason so the credential holder knows which
# corrective action applies (re-scan, wait, or request a new grant).
REASON_MESSAGES: dict[ScanReason, str] = {
    ScanReason.INVALID: "This access code is invalid. Check it and scan again.",
    ScanReason.NOT_YET_VALID: "This access code is not active yet. Try again once the access window opens.",
    ScanReason.EXPIRED: "This access code has expired. Ask the auditor to request a new one.",
    ScanReason.CODE_MISMATCH: "The verify code is incorrect. Ask the auditor for the code and try again.",
}


@dataclass
class AccessGrant:
    """A time-bounded access credential for one (audit, auditor, department) triple.

    verify_code is None for departments that were not sensitive at issuance.
    status holds the STORED status ("Active" or "Revoked"); use
    grants.validator.effective_status() for the reported value.

    grant_id is "" before the record is written to the database.
    """

    audit_id: str
    auditor_id: str
    dept_id: str
    token: str
    valid_from: datetime
    valid_to: datetime
    grant_id: str = ""
    verify_code: Optional[str] = None
    status: GrantStatus = GrantStatus.ACTIVE
    created_at: Optional[datetime] = None
    issued_by: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[str] = None


@dataclass(frozen=True)
class ScanResult:
    """Outcome of presenting a token.

    Grant fields are populated only when is_valid is True; reason only when
    it is False. requires_code reports whether the grant carries a verify code,
    i.e. whether the department was sensitive at issuance.
    """

    is_valid: bool
    reason: Optional[ScanReason] = None
    audit_id: Optional[str] = None
    auditor_id: Optional[str] = None
    dept_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    verify_code: Optional[str] = None
    requires_code: bool = False


@dataclass(frozen=True)
class VerifyResult:
    is_valid: bool
    reason: Optional[ScanReason] = None


@dataclass(frozen=True)
class GrantFilter:
    """Optional equality filters for listing grants. All None = every grant."""

    audit_id: Optional[str] = None
    dept_id: Optional[str] = None
    auditor_id: Optional[str] = None
