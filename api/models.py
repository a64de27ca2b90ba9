"""
API request and response models for FieldPass REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in grants/models.py and
directory/models.py, which own the internal domain representation. Route
handlers map between the two via the from_* factory methods below.

Every list endpoint returns a plain JSON array and every error returns the
ErrorResponse envelope -- one shape per endpoint, no wrapping variants.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from directory.models import Audit, Department, SensitiveArea
from grants.models import REASON_MESSAGES, AccessGrant, GrantStatus, ScanReason, ScanResult, VerifyResult

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RoleEnum(str, Enum):
    admin = "admin"
    lead_auditor = "lead_auditor"
    auditor = "auditor"
    auditee_owner = "auditee_owner"


class SensitivityLevelEnum(str, Enum):
    high = "High"
    medium = "Medium"
    low = "Low"
    unset = ""


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Access grants -- requests
# ---------------------------------------------------------------------------

_Identifier = Annotated[str, Field(min_length=1, max_length=64)]


class IssueGrantRequest(BaseModel):
    """Request body for POST /api/v1/access-grants/issue.

    valid_from defaults to now. ttl_minutes, when present, overrides valid_to.
    Naive datetimes are interpreted as UTC. Window ordering is checked by the
    issuer, which answers 422 with code=validation_error.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    audit_id: _Identifier
    auditor_id: _Identifier
    dept_id: _Identifier
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    ttl_minutes: Optional[int] = Field(default=None, gt=0, le=60 * 24 * 90)


class ScanRequest(BaseModel):
    """Request body for POST /api/v1/access-grants/scan. The scanner is the caller."""

    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(min_length=1, max_length=512)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /api/v1/access-grants/verify-code.

    token is trimmed like ScanRequest.token; code is compared exactly as sent:
    no trimming, no case folding.
    """

    token: str = Field(min_length=1, max_length=512)
    code: str = Field(min_length=1, max_length=32)

    @field_validator("token", mode="before")
    @classmethod
    def strip_token(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Access grants -- responses
# ---------------------------------------------------------------------------


class GrantResponse(BaseModel):
    """One access grant. verify_code is null when the caller may not see it."""

    model_config = ConfigDict(frozen=True)

    grant_id: str
    audit_id: str
    auditor_id: str
    dept_id: str
    token: str
    url: str
    verify_code: Optional[str] = None
    requires_code: bool
    valid_from: datetime
    valid_to: datetime
    status: GrantStatus
    created_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None

    @classmethod
    def from_grant(cls, grant: AccessGrant, status: GrantStatus, url: str, show_code: bool) -> "GrantResponse":
        return cls(
            grant_id=grant.grant_id,
            audit_id=grant.audit_id,
            auditor_id=grant.auditor_id,
            dept_id=grant.dept_id,
            token=grant.token,
            url=url,
            verify_code=grant.verify_code if show_code else None,
            requires_code=grant.verify_code is not None,
            valid_from=grant.valid_from,
            valid_to=grant.valid_to,
            status=status,
            created_at=grant.created_at,
            revoked_at=grant.revoked_at,
        )


class ScanResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    audit_id: Optional[str] = None
    auditor_id: Optional[str] = None
    dept_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    verify_code: Optional[str] = None
    requires_code: bool = False
    reason: Optional[ScanReason] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: ScanResult, expose_code: bool) -> "ScanResponse":
        """Map a ScanResult. expose_code=False drops the verify code from the payload.

        requires_code is always reported so the scanning side knows a code
        must be obtained from the credential holder.
        """
        return cls(
            is_valid=result.is_valid,
            audit_id=result.audit_id,
            auditor_id=result.auditor_id,
            dept_id=result.dept_id,
            expires_at=result.expires_at,
            verify_code=result.verify_code if expose_code else None,
            requires_code=result.requires_code,
            reason=result.reason,
            message=REASON_MESSAGES[result.reason] if result.reason else None,
        )


class VerifyCodeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: Optional[ScanReason] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: VerifyResult) -> "VerifyCodeResponse":
        return cls(
            is_valid=result.is_valid,
            reason=result.reason,
            message=REASON_MESSAGES[result.reason] if result.reason else None,
        )


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------


class DepartmentCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    dept_id: Optional[str] = Field(default=None, min_length=1, max_length=64)


class SensitiveAreaCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    area: str = Field(min_length=1, max_length=255)
    level: SensitivityLevelEnum = SensitivityLevelEnum.unset
    default_notes: str = Field(default="", max_length=1000)


class SensitiveAreaResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    dept_id: str
    area: str
    level: str
    default_notes: str
    created_by: Optional[str]
    created_at: str

    @classmethod
    def from_area(cls, area: SensitiveArea) -> "SensitiveAreaResponse":
        return cls(
            id=area.id,
            dept_id=area.dept_id,
            area=area.area,
            level=area.level,
            default_notes=area.default_notes,
            created_by=area.created_by,
            created_at=area.created_at,
        )


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    dept_id: str
    name: str
    is_sensitive: bool
    sensitive_areas: list[SensitiveAreaResponse] = Field(default_factory=list)
    created_at: str

    @classmethod
    def from_department(cls, dept: Department) -> "DepartmentResponse":
        return cls(
            dept_id=dept.dept_id,
            name=dept.name,
            is_sensitive=len(dept.sensitive_areas) > 0,
            sensitive_areas=[SensitiveAreaResponse.from_area(a) for a in dept.sensitive_areas],
            created_at=dept.created_at,
        )


class AuditCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    audit_id: Optional[str] = Field(default=None, min_length=1, max_length=64)
    start_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    end_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class AuditResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    audit_id: str
    title: str
    start_date: Optional[str]
    end_date: Optional[str]
    created_at: str

    @classmethod
    def from_audit(cls, audit: Audit) -> "AuditResponse":
        return cls(
            audit_id=audit.audit_id,
            title=audit.title,
            start_date=audit.start_date,
            end_date=audit.end_date,
            created_at=audit.created_at,
        )


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    username: str
    role: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    role: str
    full_name: str


class UserCreate(BaseModel):
    """Request body for POST /api/v1/auth/users (admin only)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=8, max_length=255)
    role: RoleEnum = RoleEnum.auditor
    full_name: str = Field(default="", max_length=255)
    avatar_url: Optional[str] = Field(default=None, max_length=1000)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    role: str
    full_name: str
    is_active: bool
    created_at: str


class UserProfileResponse(BaseModel):
    """Display identity used by the scan workflow to show who is holding a grant."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str
    avatar_url: Optional[str] = None
