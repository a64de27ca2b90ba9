"""
directory/models.py -- Reference data the grant protocol looks up but does not own.

Departments (with their declared sensitive areas), audits, and auditor
profiles. Pure data containers; directory/store.py does the work.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class SensitiveArea:
    """One declared sensitive area of a department (e.g. "Server room").

    A department with at least one of these requires a verify code on every
    grant issued for it.
    """

    dept_id: str
    area: str
    id: Optional[int] = None
    level: str = ""  # "High" | "Medium" | "Low" | ""
    default_notes: str = ""
    created_by: Optional[str] = None
    created_at: str = ""  # ISO 8601, set by store on insert


@dataclass
class Department:
    name: str
    dept_id: str = ""  # generated by the store when empty
    created_at: str = ""
    sensitive_areas: list[SensitiveArea] = field(default_factory=list)


@dataclass
class Audit:
    title: str
    audit_id: str = ""  # generated by the store when empty
    start_date: Optional[str] = None  # YYYY-MM-DD
    end_date: Optional[str] = None
    created_at: str = ""


@dataclass
class AuditorProfile:
    """Display identity of an auditor, resolved from the user store."""

    auditor_id: str
    display_name: str
    avatar_url: Optional[str] = None
