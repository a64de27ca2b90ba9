"""Unit tests for client/api.py -- ApiClient request building and error mapping.

The requests Session is a MagicMock; no network. Covers:
- scan / verify / issue / list map JSON into domain objects
- bearer token header
- 404 on lookups -> None; 404 elsewhere -> NotFoundError
- 422 -> ValidationError; 5xx / 401 / transport errors -> CollaboratorError
- retry adapter only retries GETs
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
import requests

from client.api import ApiClient, _build_session
from core.errors import CollaboratorError, NotFoundError, ValidationError
from grants.models import GrantFilter, GrantStatus, ScanReason


def _response(status: int, payload=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    resp.reason = "Reason"
    resp.text = ""
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    return ApiClient("http://api.test/api/v1/", token="jwt-abc", timeout=2.5, session=session)


_GRANT_JSON = {
    "grant_id": "g-1",
    "audit_id": "A-1",
    "auditor_id": "7",
    "dept_id": "LAB",
    "token": "tok",
    "url": "https://fieldpass.test/verify/tok",
    "verify_code": "123456",
    "requires_code": True,
    "valid_from": "2026-03-02T09:00:00Z",
    "valid_to": "2026-03-02T10:00:00.000001Z",
    "status": "Active",
    "created_at": "2026-03-02T09:00:00Z",
    "revoked_at": None,
}


def test_bearer_header_set(client, session):
    assert session.headers["Authorization"] == "Bearer jwt-abc"


def test_scan_maps_valid_result(client, session):
    session.request.return_value = _response(
        200,
        {
            "is_valid": True,
            "audit_id": "A-1",
            "auditor_id": "7",
            "dept_id": "LAB",
            "expires_at": "2026-03-02T10:00:00Z",
            "verify_code": None,
            "requires_code": True,
            "reason": None,
            "message": None,
        },
    )
    result = client.scan("tok")
    session.request.assert_called_once_with(
        "POST", "http://api.test/api/v1/access-grants/scan", timeout=2.5, json={"token": "tok"}
    )
    assert result.is_valid
    assert result.requires_code
    assert result.expires_at == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def test_scan_maps_reason(client, session):
    session.request.return_value = _response(200, {"is_valid": False, "reason": "NotYetValid"})
    assert client.scan("tok").reason == ScanReason.NOT_YET_VALID


def test_verify_code(client, session):
    session.request.return_value = _response(200, {"is_valid": False, "reason": "CodeMismatch"})
    result = client.verify_code("tok", "000000")
    assert result.reason == ScanReason.CODE_MISMATCH
    _, kwargs = session.request.call_args
    assert kwargs["json"] == {"token": "tok", "code": "000000"}


def test_issue_sends_only_given_fields(client, session):
    session.request.return_value = _response(201, _GRANT_JSON)
    grant = client.issue("A-1", "7", "LAB", ttl_minutes=60)
    _, kwargs = session.request.call_args
    assert kwargs["json"] == {"audit_id": "A-1", "auditor_id": "7", "dept_id": "LAB", "ttl_minutes": 60}
    assert grant.grant_id == "g-1"
    assert grant.status == GrantStatus.ACTIVE
    assert grant.valid_to.microsecond == 1


def test_list_passes_filters(client, session):
    session.request.return_value = _response(200, [_GRANT_JSON])
    grants = client.list_grants(GrantFilter(dept_id="LAB"))
    _, kwargs = session.request.call_args
    assert kwargs["params"] == {"dept_id": "LAB"}
    assert [g.token for g in grants] == ["tok"]


def test_lookup_404_returns_none(client, session):
    session.request.return_value = _response(404, {"error": {"code": "not_found", "message": "Audit X not found"}})
    assert client.get_audit("X") is None
    assert client.get_auditor("X") is None
    assert client.get_department("X") is None


def test_lookup_maps_department(client, session):
    session.request.return_value = _response(
        200,
        {
            "dept_id": "LAB",
            "name": "Research Lab",
            "is_sensitive": True,
            "created_at": "",
            "sensitive_areas": [
                {
                    "id": 1,
                    "dept_id": "LAB",
                    "area": "Server room",
                    "level": "High",
                    "default_notes": "",
                    "created_by": None,
                    "created_at": "",
                }
            ],
        },
    )
    dept = client.get_department("LAB")
    assert dept.name == "Research Lab"
    assert dept.sensitive_areas[0].area == "Server room"


def test_revoke_404_raises(client, session):
    session.request.return_value = _response(404, {"error": {"code": "not_found", "message": "Grant g not found"}})
    with pytest.raises(NotFoundError, match="Grant g not found"):
        client.revoke("g")


def test_422_raises_validation_error(client, session):
    session.request.return_value = _response(422, {"error": {"code": "validation_error", "message": "bad window"}})
    with pytest.raises(ValidationError, match="bad window"):
        client.issue("A-1", "7", "LAB")


@pytest.mark.parametrize("status", [401, 403, 429, 500, 502])
def test_other_errors_raise_collaborator_error(client, session, status):
    session.request.return_value = _response(status, {"error": {"code": "x", "message": "nope"}})
    with pytest.raises(CollaboratorError):
        client.scan("tok")


def test_transport_error_raises_collaborator_error(client, session):
    session.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(CollaboratorError):
        client.get_audit("A-1")


def test_retry_adapter_only_retries_gets():
    s = _build_session(max_retries=4)
    retry = s.get_adapter("http://api.test").max_retries
    assert retry.total == 4
    assert retry.allowed_methods == frozenset({"GET"})
    assert 503 in retry.status_forcelist
    assert s.max_redirects == 3
