from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.constants import STOCK_ADMIN_ROLES, UNSCOPED_ROLES
from app.core.errors import ActorNotFoundError, PermissionDeniedError, ScopeError
from app.core.scope import Scope
from app.models.organization import Branch
from app.models.profile import Profile


@dataclass(frozen=True)
class Actor:
    id: str
    organization_id: Optional[int]
    branch_id: Optional[int]
    role: str

    @property
    def is_branch_pinned(self) -> bool:
        if self.branch_id is not None:
            return True
        return self.role not in UNSCOPED_ROLES


def load_actor(db: Session, actor_id) -> Actor:
    if actor_id is None or not str(actor_id).strip():
        raise ActorNotFoundError("user_id is required")
    profile = db.get(Profile, str(actor_id).strip())
    if profile is None:
        raise ActorNotFoundError("Unknown user: {}".format(actor_id))
    return Actor(
        id=profile.id,
        organization_id=profile.organization_id,
        branch_id=profile.branch_id,
        role=(profile.role or "").strip().lower(),
    )


def require_stock_admin(actor: Actor) -> None:
    if actor.role not in STOCK_ADMIN_ROLES:
        raise PermissionDeniedError(
            "Role '{}' may not record opening stock or manage items".format(actor.role)
        )


def organization_branch_ids(db: Session, organization_id: int, *, active_only: bool = True) -> list[int]:
    stmt = select(Branch.id).where(Branch.organization_id == organization_id)
    if active_only:
        stmt = stmt.where(Branch.is_active.is_(True))
    return list(db.execute(stmt.order_by(Branch.id)).scalars().all())


def ensure_branch_in_organization(db: Session, organization_id: int, branch_id: int) -> None:
    branch = db.get(Branch, branch_id)
    if branch is None or branch.organization_id != organization_id:
        raise ScopeError("Branch {} does not belong to organization {}".format(branch_id, organization_id))


def resolve_scope(db: Session, actor: Actor, requested_branch_id: Optional[int] = None) -> Scope:
    """Effective scope for ``actor``.

    Branch-pinned actors always get their own branch whatever they ask for.
    Unscoped admins get the requested branch, or the whole organization.
    """
    if actor.organization_id is None:
        raise ScopeError("User {} is not assigned to an organization".format(actor.id))
    organization_id = actor.organization_id

    if actor.is_branch_pinned:
        if actor.branch_id is not None:
            return Scope.branch(organization_id, actor.branch_id)
        if organization_branch_ids(db, organization_id, active_only=False):
            raise ScopeError("User {} is not assigned to a branch".format(actor.id))
        return Scope.branch(organization_id, None)

    if requested_branch_id is not None:
        ensure_branch_in_organization(db, organization_id, requested_branch_id)
        return Scope.branch(organization_id, requested_branch_id)
    return Scope.organization(organization_id)


def concrete_scopes(db: Session, scope: Scope) -> list[Scope]:
    """Writable branch scopes covered by ``scope``."""
    if not scope.org_wide:
        return [scope]
    branch_ids = organization_branch_ids(db, scope.organization_id)
    if not branch_ids:
        return [scope.for_branch(None)]
    return [scope.for_branch(branch_id) for branch_id in branch_ids]


def require_concrete_scope(db: Session, scope: Scope) -> Scope:
    scopes = concrete_scopes(db, scope)
    if len(scopes) != 1:
        raise ScopeError("branch_id is required for organizations with branches")
    return scopes[0]


__all__ = [
    "Actor",
    "concrete_scopes",
    "ensure_branch_in_organization",
    "load_actor",
    "organization_branch_ids",
    "require_concrete_scope",
    "require_stock_admin",
    "resolve_scope",
]
