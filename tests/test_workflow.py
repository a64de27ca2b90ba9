"""Tests for client/workflow.py and client/capture.py -- the scan-side state machine.

The gateway is an in-process stand-in for ApiClient: it calls the real
AccessGrantService and applies the same verify-code exposure rule as the
HTTP route (only the grant's own auditor sees the code on scan).

Covers:
- Idle -> Scanning -> Scanned -> Verified -> Routed for a plain department
- AwaitingCode for a sensitive department when the scanner is not the holder,
  retry after CodeMismatch, then Verified
- holder scanning their own sensitive grant skips AwaitingCode
- invalid scans stop in Scanned with the reason message; reset returns to Idle
- single-flight capture, cancel, and state guards
- display names with placeholder fallback on lookup failure
- duplicate captures within the window are dropped
- token extraction from credential URLs
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from client.capture import ManualCapture, extract_token
from client.workflow import PLACEHOLDER, ScanSession, ScanState
from core.errors import CaptureInProgressError, CollaboratorError, WorkflowStateError
from grants.models import REASON_MESSAGES, ScanReason

# ---------------------------------------------------------------------------
# Gateways
# ---------------------------------------------------------------------------


class ServiceGateway:
    def __init__(self, service, scanner_id: str) -> None:
        self.service = service
        self.scanner_id = scanner_id
        self.scans = 0

    def scan(self, token):
        self.scans += 1
        result = self.service.scan(token, self.scanner_id)
        if result.auditor_id != self.scanner_id:
            result = replace(result, verify_code=None)
        return result

    def verify_code(self, token, code):
        return self.service.verify_code(token, self.scanner_id, code)

    def get_audit(self, audit_id):
        return self.service.lookup.get_audit(audit_id)

    def get_auditor(self, auditor_id):
        return self.service.lookup.get_auditor(auditor_id)

    def get_department(self, dept_id):
        return self.service.lookup.get_department(dept_id)


class LookupDownGateway(ServiceGateway):
    def get_audit(self, audit_id):
        raise CollaboratorError("directory unreachable")

    def get_auditor(self, auditor_id):
        raise CollaboratorError("directory unreachable")

    def get_department(self, dept_id):
        return None


class ScanDownGateway(ServiceGateway):
    def scan(self, token):
        raise CollaboratorError("api unreachable")


OWNER = "owner-1"


@pytest.fixture
def source():
    return ManualCapture()


@pytest.fixture
def session(service, source, clock):
    return ScanSession(ServiceGateway(service, OWNER), source=source, clock=clock)


@pytest.fixture
def plain_grant(service, seed):
    return service.issue(seed.audit_id, seed.auditor_id, seed.plain_dept)


@pytest.fixture
def sensitive_grant(service, seed):
    return service.issue(seed.audit_id, seed.auditor_id, seed.sensitive_dept)


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


def test_plain_department_goes_straight_to_verified(session, source, plain_grant, seed):
    assert session.state == ScanState.IDLE
    session.start_capture()
    assert session.state == ScanState.SCANNING
    assert source.active

    source.submit(plain_grant.token)
    assert session.state == ScanState.VERIFIED
    assert not source.active
    assert session.display.auditor_name == "Ada Auditor"
    assert session.display.audit_title == "ISO 27001 surveillance"
    assert session.display.dept_name == "Human Resources"

    assert session.route() == (seed.audit_id, seed.plain_dept)
    assert session.state == ScanState.ROUTED


def test_sensitive_department_awaits_code_then_verifies(session, source, sensitive_grant):
    session.start_capture()
    source.submit(sensitive_grant.token)
    assert session.state == ScanState.AWAITING_CODE
    assert session.result.verify_code is None

    wrong = "x" * len(sensitive_grant.verify_code)
    result = session.submit_code(wrong)
    assert result.reason == ScanReason.CODE_MISMATCH
    assert session.state == ScanState.AWAITING_CODE
    assert session.message == REASON_MESSAGES[ScanReason.CODE_MISMATCH]

    assert session.submit_code(sensitive_grant.verify_code).is_valid
    assert session.state == ScanState.VERIFIED
    assert session.message is None
    session.route()
    assert session.state == ScanState.ROUTED


def test_holder_scanning_own_sensitive_grant_skips_code(service, source, clock, sensitive_grant, seed):
    session = ScanSession(ServiceGateway(service, seed.auditor_id), source=source, clock=clock)
    session.start_capture()
    source.submit(sensitive_grant.token)
    assert session.state == ScanState.VERIFIED
    assert session.result.verify_code == sensitive_grant.verify_code


def test_credential_url_is_accepted(session, source, plain_grant):
    session.start_capture()
    source.submit(f"https://fieldpass.test/verify/{plain_grant.token}?src=qr")
    assert session.state == ScanState.VERIFIED


def test_works_without_capture_source(service, plain_grant, clock):
    session = ScanSession(ServiceGateway(service, OWNER), clock=clock)
    session.start_capture()
    session.submit_token(plain_grant.token)
    assert session.state == ScanState.VERIFIED


# ---------------------------------------------------------------------------
# Failures and reset
# ---------------------------------------------------------------------------


def test_expired_grant_stays_scanned_with_message(session, source, plain_grant, clock, service):
    clock.now = plain_grant.valid_to + timedelta(seconds=1)
    session.start_capture()
    source.submit(plain_grant.token)
    assert session.state == ScanState.SCANNED
    assert session.result.reason == ScanReason.EXPIRED
    assert session.message == REASON_MESSAGES[ScanReason.EXPIRED]
    assert session.display is None

    with pytest.raises(WorkflowStateError):
        session.route()

    session.reset()
    assert session.state == ScanState.IDLE
    assert session.result is None
    assert session.message is None


def test_distinct_messages_per_reason():
    assert len(set(REASON_MESSAGES.values())) == len(ScanReason)


def test_garbage_capture_is_invalid_without_calling_gateway(service, clock):
    gateway = ServiceGateway(service, OWNER)
    session = ScanSession(gateway, clock=clock)
    session.start_capture()
    result = session.submit_token("   ")
    assert result.reason == ScanReason.INVALID
    assert gateway.scans == 0


def test_scan_transport_failure_returns_to_idle(service, source, plain_grant, clock):
    session = ScanSession(ScanDownGateway(service, OWNER), source=source, clock=clock)
    session.start_capture()
    with pytest.raises(CollaboratorError):
        session.submit_token(plain_grant.token)
    assert session.state == ScanState.IDLE
    assert not source.active


def test_lookup_failures_fall_back_to_placeholders(service, source, plain_grant, clock):
    session = ScanSession(LookupDownGateway(service, OWNER), source=source, clock=clock)
    session.start_capture()
    source.submit(plain_grant.token)
    assert session.state == ScanState.VERIFIED
    assert session.display.auditor_name == PLACEHOLDER
    assert session.display.audit_title == PLACEHOLDER
    assert session.display.dept_name == f"Department {plain_grant.dept_id}"


def test_reset_from_awaiting_code(session, source, sensitive_grant):
    session.start_capture()
    source.submit(sensitive_grant.token)
    session.reset()
    assert session.state == ScanState.IDLE
    assert session.token is None
    with pytest.raises(WorkflowStateError):
        session.submit_code(sensitive_grant.verify_code)


# ---------------------------------------------------------------------------
# Capture lifecycle
# ---------------------------------------------------------------------------


def test_second_capture_rejected(session):
    session.start_capture()
    with pytest.raises(CaptureInProgressError):
        session.start_capture()


def test_cancel_stops_source_and_records_nothing(session, source, service):
    session.start_capture()
    session.cancel()
    assert session.state == ScanState.IDLE
    assert not source.active
    source.submit("ignored")  # stopped source delivers nothing
    assert session.state == ScanState.IDLE


def test_cancel_outside_scanning_rejected(session):
    with pytest.raises(WorkflowStateError):
        session.cancel()


def test_start_from_verified_requires_reset(session, source, plain_grant):
    session.start_capture()
    source.submit(plain_grant.token)
    with pytest.raises(WorkflowStateError):
        session.start_capture()
    session.reset()
    session.start_capture()
    assert session.state == ScanState.SCANNING


def test_submit_token_requires_scanning(session):
    with pytest.raises(WorkflowStateError):
        session.submit_token("abc")


def test_duplicate_capture_after_reset_is_dropped(service, plain_grant, clock):
    gateway = ServiceGateway(service, OWNER)
    session = ScanSession(gateway, clock=clock)
    session.start_capture()
    session.submit_token(plain_grant.token)
    session.reset()

    session.start_capture()
    clock.advance(seconds=1)
    assert session.submit_token(plain_grant.token) is None
    assert session.state == ScanState.SCANNING
    assert gateway.scans == 1

    clock.advance(seconds=10)
    assert session.submit_token(plain_grant.token) is not None
    assert gateway.scans == 2


# ---------------------------------------------------------------------------
# Token extraction
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("abc123", "abc123"),
        ("  abc123\n", "abc123"),
        ("https://fieldpass.test/verify/abc123", "abc123"),
        ("https://fieldpass.test/verify/abc123/", "abc123"),
        ("https://fieldpass.test/app/verify/abc-_123?x=1#frag", "abc-_123"),
        ("/verify/abc123", "abc123"),
        ("", ""),
    ],
)
def test_extract_token(raw, expected):
    assert extract_token(raw) == expected
