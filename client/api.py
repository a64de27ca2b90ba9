"""
client/api.py -- HTTP client for the FieldPass REST API.

Used by the CLI (main.py) and by ScanSession, which only needs the
scan / verify_code / lookup half of it. Everything comes back as the same
domain objects the server uses (ScanResult, AccessGrant, Audit, ...), so the
workflow code cannot tell an ApiClient from an in-process service.

Retries:
  GET requests are retried with exponential backoff on connection errors and
  502/503/504 (urllib3 Retry mounted on the requests Session). POSTs are never
  retried: issue and revoke are writes, and scan / verify-code are counted by
  the server's rate limiter.

Errors:
  Transport failures, auth failures and 5xx   -> CollaboratorError
  404                                          -> NotFoundError (lookups return None)
  422                                          -> ValidationError
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.clock import parse_iso
from core.config import Settings, get_settings
from core.errors import CollaboratorError, NotFoundError, ValidationError
from directory.models import Audit, AuditorProfile, Department, SensitiveArea
from grants.models import AccessGrant, GrantFilter, GrantStatus, ScanReason, ScanResult, VerifyResult

logger = logging.getLogger("fieldpass.client")

_RETRY_STATUSES = (502, 503, 504)


def _build_session(max_retries: int) -> requests.Session:
    session = requests.Session()
    # Same hop cap as any known-endpoint client: the API never redirects more than once.
    session.max_redirects = 3
    retry = Retry(
        total=max_retries,
        backoff_factor=0.5,
        status_forcelist=_RETRY_STATUSES,
        allowed_methods=frozenset({"GET"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # pydantic emits "Z" for UTC
    return parse_iso(value.replace("Z", "+00:00"))


def _reason(value: Optional[str]) -> Optional[ScanReason]:
    return ScanReason(value) if value else None


class ApiClient:
    """Thin requests wrapper around /api/v1.

    Usage:
        client = ApiClient.from_settings()
        grant = client.issue("A-1", "7", "HR", ttl_minutes=60)
        result = client.scan(grant.token)
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or _build_session(max_retries)
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ApiClient":
        s = settings or get_settings()
        return cls(
            s.api_base_url,
            token=s.api_token,
            timeout=s.client_timeout_seconds,
            max_retries=s.client_max_retries,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise CollaboratorError(f"FieldPass API unreachable: {exc}") from exc

        if resp.status_code < 400:
            return resp.json() if resp.content else None

        message = _error_message(resp)
        if resp.status_code == 404:
            raise NotFoundError(message)
        if resp.status_code == 422:
            raise ValidationError(message)
        logger.warning("%s %s -> %d: %s", method, path, resp.status_code, message)
        raise CollaboratorError(f"FieldPass API error {resp.status_code}: {message}")

    def _lookup(self, path: str) -> Optional[dict]:
        try:
            return self._request("GET", path)
        except NotFoundError:
            return None

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def issue(
        self,
        audit_id: str,
        auditor_id: str,
        dept_id: str,
        valid_from: Optional[datetime] = None,
        valid_to: Optional[datetime] = None,
        ttl_minutes: Optional[int] = None,
    ) -> AccessGrant:
        body: dict[str, Any] = {"audit_id": audit_id, "auditor_id": auditor_id, "dept_id": dept_id}
        if valid_from is not None:
            body["valid_from"] = valid_from.isoformat()
        if valid_to is not None:
            body["valid_to"] = valid_to.isoformat()
        if ttl_minutes is not None:
            body["ttl_minutes"] = ttl_minutes
        return _grant_from_json(self._request("POST", "/access-grants/issue", json=body))

    def list_grants(self, filters: Optional[GrantFilter] = None) -> list[AccessGrant]:
        params: dict[str, str] = {}
        if filters is not None:
            params = {
                k: v
                for k, v in (
                    ("audit_id", filters.audit_id),
                    ("dept_id", filters.dept_id),
                    ("auditor_id", filters.auditor_id),
                )
                if v is not None
            }
        return [_grant_from_json(g) for g in self._request("GET", "/access-grants", params=params)]

    def revoke(self, grant_id: str) -> AccessGrant:
        return _grant_from_json(self._request("POST", f"/access-grants/{grant_id}/revoke"))

    def scan(self, token: str) -> ScanResult:
        data = self._request("POST", "/access-grants/scan", json={"token": token})
        return ScanResult(
            is_valid=data["is_valid"],
            reason=_reason(data.get("reason")),
            audit_id=data.get("audit_id"),
            auditor_id=data.get("auditor_id"),
            dept_id=data.get("dept_id"),
            expires_at=_dt(data.get("expires_at")),
            verify_code=data.get("verify_code"),
            requires_code=data.get("requires_code", False),
        )

    def verify_code(self, token: str, code: str) -> VerifyResult:
        data = self._request("POST", "/access-grants/verify-code", json={"token": token, "code": code})
        return VerifyResult(is_valid=data["is_valid"], reason=_reason(data.get("reason")))

    # ------------------------------------------------------------------
    # Lookups (None when the entity does not exist)
    # ------------------------------------------------------------------

    def get_audit(self, audit_id: str) -> Optional[Audit]:
        data = self._lookup(f"/audits/{audit_id}")
        if data is None:
            return None
        return Audit(
            audit_id=data["audit_id"],
            title=data["title"],
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            created_at=data.get("created_at", ""),
        )

    def get_department(self, dept_id: str) -> Optional[Department]:
        data = self._lookup(f"/departments/{dept_id}")
        if data is None:
            return None
        return Department(
            dept_id=data["dept_id"],
            name=data["name"],
            created_at=data.get("created_at", ""),
            sensitive_areas=[
                SensitiveArea(
                    id=a["id"],
                    dept_id=a["dept_id"],
                    area=a["area"],
                    level=a.get("level", ""),
                    default_notes=a.get("default_notes", ""),
                    created_by=a.get("created_by"),
                    created_at=a.get("created_at", ""),
                )
                for a in data.get("sensitive_areas", [])
            ],
        )

    def get_auditor(self, auditor_id: str) -> Optional[AuditorProfile]:
        data = self._lookup(f"/auth/users/{auditor_id}/profile")
        if data is None:
            return None
        return AuditorProfile(
            auditor_id=data["user_id"],
            display_name=data["display_name"],
            avatar_url=data.get("avatar_url"),
        )

    def close(self) -> None:
        self.session.close()


# ---------------------------------------------------------------------------
# Response mappers
# ---------------------------------------------------------------------------


def _error_message(resp: requests.Response) -> str:
    try:
        error = resp.json().get("error", {})
    except ValueError:
        return resp.text[:200] or resp.reason
    return error.get("message") or resp.reason


def _grant_from_json(data: dict) -> AccessGrant:
    # status here is the server-reported (effective) status, Expired included
    return AccessGrant(
        grant_id=data["grant_id"],
        audit_id=data["audit_id"],
        auditor_id=data["auditor_id"],
        dept_id=data["dept_id"],
        token=data["token"],
        verify_code=data.get("verify_code"),
        valid_from=_dt(data["valid_from"]),
        valid_to=_dt(data["valid_to"]),
        status=GrantStatus(data["status"]),
        created_at=_dt(data.get("created_at")),
        revoked_at=_dt(data.get("revoked_at")),
    )
