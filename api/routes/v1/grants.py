"""
api/routes/v1/grants.py -- Access grant protocol routes.

Routes (literal paths registered before /access-grants/{grant_id}):
  POST /access-grants/issue            -- issue a grant (admin, lead_auditor)
  POST /access-grants/scan             -- validate a token; scanner = caller
  GET  /access-grants/verify/{token}   -- same as scan, for the URL form of the credential
  POST /access-grants/verify-code      -- second-factor check
  GET  /access-grants                  -- list, filterable by audit_id / dept_id / auditor_id
  GET  /access-grants/{grant_id}       -- one grant
  POST /access-grants/{grant_id}/revoke -- revoke (admin); idempotent

Scan and verify-code failures are 200 responses with is_valid=false and a
reason. Only malformed requests and unknown ids produce error statuses.

Verify code visibility:
  - Issue / list / get: visible to admins, lead auditors, and the auditor
    the grant belongs to.
  - Scan: visible only when the scanner IS the grant's auditor. Anyone else
    sees requires_code=true and must obtain the code from the holder.

Auditors only ever list their own grants, whatever filter they pass.
Auditee owners scan and verify but cannot browse grants.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from api.limiter import limiter
from api.models import (
    GrantResponse,
    IssueGrantRequest,
    ScanRequest,
    ScanResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
)
from auth.dependencies import get_current_user, require_admin, require_roles
from auth.models import ISSUER_ROLES, User
from core.config import get_settings
from grants.models import AccessGrant, GrantFilter
from grants.service import AccessGrantService


# Limits are read per request so a changed setting applies without a restart.
def _scan_limit() -> str:
    return get_settings().scan_rate_limit


def _verify_code_limit() -> str:
    return get_settings().verify_code_rate_limit


# Every route requires authentication; role checks are added per route.
router = APIRouter(dependencies=[Depends(get_current_user)])


def _service(request: Request) -> AccessGrantService:
    return request.app.state.grants


def _can_see_code(user: User, grant: AccessGrant) -> bool:
    return user.role in ISSUER_ROLES or str(user.id) == grant.auditor_id


def _to_response(service: AccessGrantService, grant: AccessGrant, user: User) -> GrantResponse:
    return GrantResponse.from_grant(
        grant,
        status=service.status_of(grant),
        url=service.url_for(grant),
        show_code=_can_see_code(user, grant),
    )


def _scan(request: Request, token: str, user: User) -> ScanResponse:
    result = _service(request).scan(token, scanner_user_id=str(user.id))
    expose = result.is_valid and result.auditor_id == str(user.id)
    return ScanResponse.from_result(result, expose_code=expose)


# ---------------------------------------------------------------------------
# POST /access-grants/issue
# ---------------------------------------------------------------------------


@router.post("/access-grants/issue", response_model=GrantResponse, status_code=201)
def issue_grant(
    request: Request,
    body: IssueGrantRequest,
    current_user: User = Depends(require_roles(*ISSUER_ROLES)),
) -> GrantResponse:
    """Issue a time-bounded grant for (audit, auditor, department).

    422 validation_error -- missing identifier or valid_from >= valid_to.
    404 not_found        -- audit, auditor, or department does not exist.
    """
    service = _service(request)
    grant = service.issue(
        audit_id=body.audit_id,
        auditor_id=body.auditor_id,
        dept_id=body.dept_id,
        valid_from=body.valid_from,
        valid_to=body.valid_to,
        ttl_minutes=body.ttl_minutes,
        issued_by=str(current_user.id),
    )
    return _to_response(service, grant, current_user)


# ---------------------------------------------------------------------------
# Scan and verify
# ---------------------------------------------------------------------------


@router.post("/access-grants/scan", response_model=ScanResponse)
@limiter.limit(_scan_limit)
def scan_grant(
    request: Request,
    body: ScanRequest,
    current_user: User = Depends(get_current_user),
) -> ScanResponse:
    """Validate a presented token at the current time."""
    return _scan(request, body.token, current_user)


@router.get("/access-grants/verify/{token}", response_model=ScanResponse)
@limiter.limit(_scan_limit)
def scan_grant_by_url(
    request: Request,
    token: str,
    current_user: User = Depends(get_current_user),
) -> ScanResponse:
    """Validate a token taken from the credential URL ({base}/verify/{token})."""
    return _scan(request, token, current_user)


@router.post("/access-grants/verify-code", response_model=VerifyCodeResponse)
@limiter.limit(_verify_code_limit)
def verify_grant_code(
    request: Request,
    body: VerifyCodeRequest,
    current_user: User = Depends(get_current_user),
) -> VerifyCodeResponse:
    """Check the verify code of a currently valid grant.

    Rate-limited per client address; there is no per-grant lockout, so a
    wrong code never blocks the legitimate holder.
    """
    result = _service(request).verify_code(body.token, scanner_user_id=str(current_user.id), code=body.code)
    return VerifyCodeResponse.from_result(result)


# ---------------------------------------------------------------------------
# Listing and lookup
# ---------------------------------------------------------------------------


@router.get("/access-grants", response_model=list[GrantResponse])
def list_grants(
    request: Request,
    audit_id: Optional[str] = None,
    dept_id: Optional[str] = None,
    auditor_id: Optional[str] = None,
    current_user: User = Depends(require_roles(*ISSUER_ROLES, "auditor")),
) -> list[GrantResponse]:
    """List grants newest first. Auditors are always scoped to their own grants."""
    if current_user.role == "auditor":
        auditor_id = str(current_user.id)
    service = _service(request)
    grants = service.list_grants(GrantFilter(audit_id=audit_id, dept_id=dept_id, auditor_id=auditor_id))
    return [_to_response(service, g, current_user) for g in grants]


@router.get("/access-grants/{grant_id}", response_model=GrantResponse)
def get_grant(
    request: Request,
    grant_id: str,
    current_user: User = Depends(get_current_user),
) -> GrantResponse:
    """Return one grant. Callers who may not see it get the same 404 as a missing id."""
    service = _service(request)
    grant = service.get_grant(grant_id)
    if current_user.role not in ISSUER_ROLES and grant.auditor_id != str(current_user.id):
        raise HTTPException(
            status_code=404,
            detail={"code": "not_found", "message": f"Grant {grant_id} not found"},
        )
    return _to_response(service, grant, current_user)


@router.post("/access-grants/{grant_id}/revoke", response_model=GrantResponse)
def revoke_grant(
    request: Request,
    grant_id: str,
    current_user: User = Depends(require_admin),
) -> GrantResponse:
    """Revoke a grant. Terminal; repeating the call returns the grant unchanged."""
    service = _service(request)
    grant = service.revoke(grant_id, revoked_by=str(current_user.id))
    return _to_response(service, grant, current_user)
