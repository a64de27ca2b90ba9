"""Unit tests for grants/verifier.py and AccessGrantService.revoke().

Covers:
- Scenario C: correct code -> valid; wrong code -> CodeMismatch, grant untouched, retry allowed
- comparison is exact: case, whitespace; non-string submissions are a mismatch
- window / status checks run before the comparison
- grants without a code never verify
- revoke idempotence and NotFoundError for unknown ids
"""

from datetime import timedelta

import pytest
from sqlalchemy import text

from core.errors import NotFoundError
from grants.models import GrantStatus, ScanReason


@pytest.fixture
def sensitive_grant(service, seed, clock):
    return service.issue(seed.audit_id, seed.auditor_id, seed.sensitive_dept, valid_from=clock.now, ttl_minutes=60)


@pytest.fixture
def owner():
    # verify is keyed on the token; any scanner id works
    return "owner-42"


def test_scenario_c_correct_code(service, sensitive_grant, owner):
    scan = service.scan(sensitive_grant.token, owner)
    assert scan.is_valid and scan.requires_code

    result = service.verify_code(sensitive_grant.token, owner, sensitive_grant.verify_code)
    assert result.is_valid is True
    assert result.reason is None


def test_scenario_c_wrong_code_then_retry(service, sensitive_grant, owner):
    before = service.get_grant(sensitive_grant.grant_id)
    wrong = "0" * len(sensitive_grant.verify_code)
    if wrong == sensitive_grant.verify_code:
        wrong = "1" * len(sensitive_grant.verify_code)

    result = service.verify_code(sensitive_grant.token, owner, wrong)
    assert result.is_valid is False
    assert result.reason == ScanReason.CODE_MISMATCH
    assert service.get_grant(sensitive_grant.grant_id) == before

    assert service.verify_code(sensitive_grant.token, owner, sensitive_grant.verify_code).is_valid is True


def test_comparison_is_exact(service, sensitive_grant, owner):
    code = sensitive_grant.verify_code
    assert not service.verify_code(sensitive_grant.token, owner, f" {code}").is_valid
    assert not service.verify_code(sensitive_grant.token, owner, code + "0").is_valid
    assert not service.verify_code(sensitive_grant.token, owner, code[:-1]).is_valid


@pytest.mark.parametrize("submitted", [None, 123456])
def test_non_string_code_is_a_mismatch(service, sensitive_grant, owner, submitted):
    result = service.verify_code(sensitive_grant.token, owner, submitted)
    assert result.is_valid is False
    assert result.reason == ScanReason.CODE_MISMATCH


def test_case_sensitive(service, seed, clock, owner):
    grant = service.issue(seed.audit_id, seed.auditor_id, seed.sensitive_dept)
    # swap in an alphabetic code to exercise case folding
    with seed.grants.engine.begin() as conn:
        conn.execute(
            text("UPDATE access_grants SET verify_code = :c WHERE grant_id = :g"),
            {"c": "AbC123", "g": grant.grant_id},
        )
    assert service.verify_code(grant.token, owner, "AbC123").is_valid
    assert service.verify_code(grant.token, owner, "abc123").reason == ScanReason.CODE_MISMATCH


def test_expired_grant_fails_before_comparison(service, sensitive_grant, clock, owner):
    clock.advance(minutes=61)
    result = service.verify_code(sensitive_grant.token, owner, sensitive_grant.verify_code)
    assert result.reason == ScanReason.EXPIRED


def test_not_yet_valid_grant_fails_before_comparison(service, seed, clock, owner):
    grant = service.issue(
        seed.audit_id, seed.auditor_id, seed.sensitive_dept, valid_from=clock.now + timedelta(hours=1), ttl_minutes=5
    )
    assert service.verify_code(grant.token, owner, grant.verify_code).reason == ScanReason.NOT_YET_VALID


def test_revoked_grant_is_invalid(service, sensitive_grant, owner):
    service.revoke(sensitive_grant.grant_id)
    result = service.verify_code(sensitive_grant.token, owner, sensitive_grant.verify_code)
    assert result.reason == ScanReason.INVALID


def test_unknown_token_is_invalid(service, owner):
    assert service.verify_code("nope", owner, "123456").reason == ScanReason.INVALID


def test_grant_without_code_never_verifies(service, seed, owner):
    grant = service.issue(seed.audit_id, seed.auditor_id, seed.plain_dept)
    assert service.verify_code(grant.token, owner, "").reason == ScanReason.CODE_MISMATCH
    assert service.verify_code(grant.token, owner, "123456").reason == ScanReason.CODE_MISMATCH


# ---------------------------------------------------------------------------
# Revoke
# ---------------------------------------------------------------------------


def test_revoke_is_idempotent(service, sensitive_grant, clock, seed):
    first = service.revoke(sensitive_grant.grant_id, revoked_by=seed.lead_id)
    clock.advance(minutes=5)
    second = service.revoke(sensitive_grant.grant_id, revoked_by="someone-else")

    assert first.status == GrantStatus.REVOKED
    assert second.status == GrantStatus.REVOKED
    assert second.revoked_at == first.revoked_at
    assert second.revoked_by == seed.lead_id


def test_revoke_overrides_expiry(service, sensitive_grant, clock):
    clock.advance(days=2)
    revoked = service.revoke(sensitive_grant.grant_id)
    assert service.status_of(revoked) == GrantStatus.REVOKED


def test_revoke_unknown_grant(service):
    with pytest.raises(NotFoundError):
        service.revoke("missing")


def test_get_unknown_grant(service):
    with pytest.raises(NotFoundError):
        service.get_grant("missing")
