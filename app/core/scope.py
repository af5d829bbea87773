from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Scope:
    """Organization/branch pair restricting what a computation reads and writes.

    ``org_wide`` scopes read every branch of the organization and are never
    written to directly; writes always go through a concrete branch scope,
    where ``branch_id=None`` means the organization keeps stock without
    branches.
    """

    organization_id: int
    branch_id: Optional[int] = None
    org_wide: bool = False

    @classmethod
    def organization(cls, organization_id: int) -> "Scope":
        return cls(organization_id=organization_id, branch_id=None, org_wide=True)

    @classmethod
    def branch(cls, organization_id: int, branch_id: Optional[int]) -> "Scope":
        return cls(organization_id=organization_id, branch_id=branch_id, org_wide=False)

    def for_branch(self, branch_id: Optional[int]) -> "Scope":
        return Scope.branch(self.organization_id, branch_id)

    @property
    def key(self) -> str:
        if self.org_wide:
            return "org:{}:*".format(self.organization_id)
        branch = "none" if self.branch_id is None else self.branch_id
        return "org:{}:branch:{}".format(self.organization_id, branch)

    def overlaps(self, other: "Scope") -> bool:
        if self.organization_id != other.organization_id:
            return False
        if self.org_wide or other.org_wide:
            return True
        return self.branch_id == other.branch_id

    def branch_clause(self, column):
        """WHERE clause for ``column`` or ``None`` when every branch is visible."""
        if self.org_wide:
            return None
        if self.branch_id is None:
            return column.is_(None)
        return column == self.branch_id


__all__ = ["Scope"]
