"""
grants/policy.py -- Department sensitivity policy.

A department is sensitive when it has one or more declared sensitive areas.
Sensitive departments get a verify code on every grant issued for them.

The policy is consulted exactly once per grant, by the issuer, at issuance.
Nothing downstream re-evaluates it: the presence of a verify code on the
stored grant IS the sensitivity decision from then on.
"""

from directory.store import DirectoryStore


class DepartmentSensitivityPolicy:
    """Pure lookup over department configuration. No state of its own, so safe to share."""

    def __init__(self, directory: DirectoryStore) -> None:
        self.directory = directory

    def is_sensitive(self, dept_id: str) -> bool:
        """Return True if dept_id has at least one declared sensitive area.

        Unknown departments are not sensitive. The issuer rejects unknown
        departments before asking.
        """
        return self.directory.count_sensitive_areas(dept_id) > 0
