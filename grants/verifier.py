"""
grants/verifier.py -- Second-factor check for grants on sensitive departments.

The token is first re-evaluated with exactly the scan rules (unknown/revoked,
window), so a grant that expired between the scan and the code entry fails
with Expired rather than CodeMismatch. Only a currently valid grant gets its
code compared.

Comparison is exact and case-sensitive, done with hmac.compare_digest so the
time taken does not leak how many leading characters matched. A mismatch
changes nothing on the grant: there is no attempt counter and the holder may
retry. Brute-force protection is the per-client rate limit on the HTTP route.
"""

from __future__ import annotations

import hmac
import logging

from grants.models import ScanReason, VerifyResult
from grants.validator import ScanValidator, token_hint

logger = logging.getLogger("fieldpass.grants.verify")


class CodeVerifier:
    def __init__(self, validator: ScanValidator) -> None:
        self.validator = validator

    def verify_code(self, token: str, scanner_user_id: str, submitted_code: str) -> VerifyResult:
        grant, reason = self.validator.resolve(token)
        if grant is None or reason is not None:
            reason = reason or ScanReason.INVALID
            logger.info(
                "Verify rejected token=%s scanner=%s reason=%s", token_hint(token), scanner_user_id, reason.value
            )
            return VerifyResult(is_valid=False, reason=reason)

        expected = grant.verify_code
        # A grant without a code was issued for a non-sensitive department;
        # nothing can match it.
        if expected is None or not isinstance(submitted_code, str) or not hmac.compare_digest(
            submitted_code.encode("utf-8"), expected.encode("utf-8")
        ):
            logger.info("Verify code mismatch grant=%s scanner=%s", grant.grant_id, scanner_user_id)
            return VerifyResult(is_valid=False, reason=ScanReason.CODE_MISMATCH)

        logger.info("Verify code accepted grant=%s scanner=%s", grant.grant_id, scanner_user_id)
        return VerifyResult(is_valid=True)
