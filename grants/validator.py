"""
grants/validator.py -- Scan-time evaluation of access grant tokens.

Evaluation order (first match wins):
  1. Unknown token           -> Invalid
  2. Stored status Revoked   -> Invalid   (never distinguished from 1, so the
                                           scanning party learns nothing about
                                           administrative actions)
  3. now <  valid_from       -> NotYetValid
  4. now >  valid_to         -> Expired   (strict: valid_to itself is valid)
  5. otherwise               -> valid

A scan is a pure function of (stored grant, now). Nothing is written, so
concurrent scans of one token need no locking and repeat scans keep returning
the same answer until the clock crosses a window edge or the grant is revoked.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from core.clock import Clock, utcnow
from grants.models import AccessGrant, GrantStatus, ScanReason, ScanResult
from grants.store import GrantStore

logger = logging.getLogger("fieldpass.grants.scan")


def evaluate(grant: Optional[AccessGrant], now: datetime) -> Optional[ScanReason]:
    """Return the reason `grant` is unusable at `now`, or None if it is usable."""
    if grant is None or grant.status == GrantStatus.REVOKED:
        return ScanReason.INVALID
    if now < grant.valid_from:
        return ScanReason.NOT_YET_VALID
    if now > grant.valid_to:
        return ScanReason.EXPIRED
    return None


def effective_status(grant: AccessGrant, now: datetime) -> GrantStatus:
    """Reported status: Revoked wins over expiry; Expired is computed, never stored."""
    if grant.status == GrantStatus.REVOKED:
        return GrantStatus.REVOKED
    if now > grant.valid_to:
        return GrantStatus.EXPIRED
    return GrantStatus.ACTIVE


def token_hint(token: str) -> str:
    """First few characters of a token, for logs. Full tokens are never logged."""
    return f"{token[:6]}..." if len(token) > 6 else "***"


class ScanValidator:
    def __init__(self, store: GrantStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    def resolve(self, token: str) -> tuple[Optional[AccessGrant], Optional[ScanReason]]:
        """Look up `token` and evaluate it at the current time.

        Shared by scan() and CodeVerifier so both apply identical rules.
        """
        grant = self.store.get_by_token(token) if token else None
        return grant, evaluate(grant, self.clock())

    def scan(self, token: str, scanner_user_id: str) -> ScanResult:
        """Validate a presented token.

        scanner_user_id is recorded in the log only; it does not affect the
        decision.
        """
        grant, reason = self.resolve(token)
        if grant is None or reason is not None:
            reason = reason or ScanReason.INVALID
            logger.info("Scan rejected token=%s scanner=%s reason=%s", token_hint(token), scanner_user_id, reason.value)
            return ScanResult(is_valid=False, reason=reason)

        logger.info("Scan accepted grant=%s scanner=%s dept=%s", grant.grant_id, scanner_user_id, grant.dept_id)
        return ScanResult(
            is_valid=True,
            audit_id=grant.audit_id,
            auditor_id=grant.auditor_id,
            dept_id=grant.dept_id,
            expires_at=grant.valid_to,
            verify_code=grant.verify_code,
            requires_code=grant.verify_code is not None,
        )
