"""
api/routes/v1/directory.py -- Departments, sensitive areas, and audits.

Routes:
  GET    /departments                                  -- list with sensitivity
  POST   /departments                                  -- create (admin)
  GET    /departments/{dept_id}                        -- detail with sensitive areas
  POST   /departments/{dept_id}/sensitive-areas        -- declare an area (admin)
  DELETE /departments/{dept_id}/sensitive-areas/{id}   -- remove an area (admin)
  POST   /audits                                       -- create (admin, lead_auditor)
  GET    /audits/{audit_id}                            -- detail

Declaring the first sensitive area makes every grant issued AFTERWARDS for
the department carry a verify code. Grants already issued are unaffected.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.exc import IntegrityError

from api.models import (
    AuditCreate,
    AuditResponse,
    DepartmentCreate,
    DepartmentResponse,
    SensitiveAreaCreate,
    SensitiveAreaResponse,
)
from auth.dependencies import get_current_user, require_admin, require_roles
from auth.models import ISSUER_ROLES, User
from core.errors import NotFoundError
from directory.models import Audit, Department, SensitiveArea
from directory.store import DirectoryStore

router = APIRouter(dependencies=[Depends(get_current_user)])


def _directory(request: Request) -> DirectoryStore:
    return request.app.state.directory


def _conflict(message: str) -> HTTPException:
    return HTTPException(status_code=409, detail={"code": "conflict", "message": message})


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


@router.get("/departments", response_model=list[DepartmentResponse])
def list_departments(request: Request) -> list[DepartmentResponse]:
    return [DepartmentResponse.from_department(d) for d in _directory(request).list_departments()]


@router.post("/departments", response_model=DepartmentResponse, status_code=201)
def create_department(
    request: Request,
    body: DepartmentCreate,
    current_user: User = Depends(require_admin),
) -> DepartmentResponse:
    directory = _directory(request)
    try:
        dept_id = directory.create_department(Department(name=body.name, dept_id=body.dept_id or ""))
    except IntegrityError as exc:
        raise _conflict("A department with that id or name already exists.") from exc
    return DepartmentResponse.from_department(directory.get_department(dept_id))


@router.get("/departments/{dept_id}", response_model=DepartmentResponse)
def get_department(request: Request, dept_id: str) -> DepartmentResponse:
    dept = _directory(request).get_department(dept_id)
    if dept is None:
        raise NotFoundError(f"Department {dept_id} not found")
    return DepartmentResponse.from_department(dept)


@router.post(
    "/departments/{dept_id}/sensitive-areas",
    response_model=SensitiveAreaResponse,
    status_code=201,
)
def add_sensitive_area(
    request: Request,
    dept_id: str,
    body: SensitiveAreaCreate,
    current_user: User = Depends(require_admin),
) -> SensitiveAreaResponse:
    directory = _directory(request)
    if directory.get_department(dept_id) is None:
        raise NotFoundError(f"Department {dept_id} not found")
    area_id = directory.add_sensitive_area(
        SensitiveArea(
            dept_id=dept_id,
            area=body.area,
            level=body.level.value,
            default_notes=body.default_notes,
            created_by=str(current_user.id),
        )
    )
    created = next(a for a in directory.get_department(dept_id).sensitive_areas if a.id == area_id)
    return SensitiveAreaResponse.from_area(created)


@router.delete("/departments/{dept_id}/sensitive-areas/{area_id}", status_code=204)
def remove_sensitive_area(
    request: Request,
    dept_id: str,
    area_id: int,
    current_user: User = Depends(require_admin),
) -> Response:
    if not _directory(request).remove_sensitive_area(dept_id, area_id):
        raise NotFoundError(f"Sensitive area {area_id} not found in department {dept_id}")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Audits
# ---------------------------------------------------------------------------


@router.post("/audits", response_model=AuditResponse, status_code=201)
def create_audit(
    request: Request,
    body: AuditCreate,
    current_user: User = Depends(require_roles(*ISSUER_ROLES)),
) -> AuditResponse:
    directory = _directory(request)
    try:
        audit_id = directory.create_audit(
            Audit(title=body.title, audit_id=body.audit_id or "", start_date=body.start_date, end_date=body.end_date)
        )
    except IntegrityError as exc:
        raise _conflict("An audit with that id already exists.") from exc
    return AuditResponse.from_audit(directory.get_audit(audit_id))


@router.get("/audits/{audit_id}", response_model=AuditResponse)
def get_audit(request: Request, audit_id: str) -> AuditResponse:
    audit = _directory(request).get_audit(audit_id)
    if audit is None:
        raise NotFoundError(f"Audit {audit_id} not found")
    return AuditResponse.from_audit(audit)
