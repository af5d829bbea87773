import unittest

from sqlalchemy import Column, Integer, MetaData, Table

from stock_fixtures import StockTestCase

from app.core.errors import ActorNotFoundError, ScopeError
from app.core.scope import Scope
from app.services.identity_service import (
    Actor,
    concrete_scopes,
    load_actor,
    require_concrete_scope,
    resolve_scope,
)

_branch_table = Table("scope_probe", MetaData(), Column("branch_id", Integer))


class ScopeTest(unittest.TestCase):
    def test_keys_distinguish_org_wide_from_branchless(self):
        self.assertEqual(Scope.organization(4).key, "org:4:*")
        self.assertEqual(Scope.branch(4, None).key, "org:4:branch:none")
        self.assertEqual(Scope.branch(4, 9).key, "org:4:branch:9")

    def test_overlaps(self):
        self.assertTrue(Scope.organization(1).overlaps(Scope.branch(1, 2)))
        self.assertTrue(Scope.branch(1, 2).overlaps(Scope.branch(1, 2)))
        self.assertFalse(Scope.branch(1, 2).overlaps(Scope.branch(1, 3)))
        self.assertFalse(Scope.organization(1).overlaps(Scope.organization(2)))

    def test_branch_clause(self):
        column = _branch_table.c.branch_id
        self.assertIsNone(Scope.organization(1).branch_clause(column))
        self.assertIn("IS NULL", str(Scope.branch(1, None).branch_clause(column)))
        self.assertIn("=", str(Scope.branch(1, 5).branch_clause(column)))


class ResolveScopeTest(StockTestCase):
    def test_unknown_user_is_rejected(self):
        with self.assertRaises(ActorNotFoundError):
            load_actor(self.db, "ghost")
        with self.assertRaises(ActorNotFoundError):
            load_actor(self.db, "  ")

    def test_pinned_actor_gets_own_branch(self):
        actor = load_actor(self.db, "staff-a")
        scope = resolve_scope(self.db, actor, self.branch_b.id)
        self.assertEqual(scope, Scope.branch(self.org.id, self.branch_a.id))

    def test_admin_gets_requested_branch_or_organization(self):
        actor = load_actor(self.db, "admin")
        self.assertEqual(
            resolve_scope(self.db, actor, self.branch_b.id),
            Scope.branch(self.org.id, self.branch_b.id),
        )
        self.assertEqual(resolve_scope(self.db, actor), Scope.organization(self.org.id))

    def test_admin_cannot_pick_foreign_branch(self):
        _organization, (foreign,) = self.add_organization("Other", branches=["Far"])
        actor = load_actor(self.db, "admin")
        with self.assertRaises(ScopeError):
            resolve_scope(self.db, actor, foreign.id)

    def test_pinned_role_without_branch_is_rejected(self):
        self.add_profile("floating", "controller")
        with self.assertRaises(ScopeError):
            resolve_scope(self.db, load_actor(self.db, "floating"))

    def test_pinned_role_in_branchless_organization(self):
        organization, _ = self.add_organization("Solo")
        self.add_profile("solo-staff", "staff", organization_id=organization.id)
        scope = resolve_scope(self.db, load_actor(self.db, "solo-staff"))
        self.assertEqual(scope, Scope.branch(organization.id, None))

    def test_actor_without_organization_is_rejected(self):
        actor = Actor(id="nomad", organization_id=None, branch_id=None, role="admin")
        with self.assertRaises(ScopeError):
            resolve_scope(self.db, actor)

    def test_concrete_scopes(self):
        org_wide = Scope.organization(self.org.id)
        self.assertEqual(
            concrete_scopes(self.db, org_wide),
            [Scope.branch(self.org.id, self.branch_a.id), Scope.branch(self.org.id, self.branch_b.id)],
        )
        with self.assertRaises(ScopeError):
            require_concrete_scope(self.db, org_wide)
        branch = Scope.branch(self.org.id, self.branch_a.id)
        self.assertEqual(require_concrete_scope(self.db, branch), branch)


if __name__ == "__main__":
    unittest.main()
