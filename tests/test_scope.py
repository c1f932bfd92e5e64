"""
Tests for scope resolution.
"""

from types import SimpleNamespace

import pytest

from app.services.segments.errors import Unauthenticated
from app.services.segments.predicates import CompareOp, Comparison
from app.services.segments.scope import (
    ActorIdentity,
    OrganizationScope,
    PersonalScope,
    ownership_values,
    resolve_scope,
)


class TestResolveScope:

    def test_member_gets_organization_scope(self):
        scope = resolve_scope(ActorIdentity(user_id=5, organization_id=9, org_role="member"))

        assert scope == OrganizationScope(actor_id=5, tenant_id=9)
        assert scope.predicate() == Comparison("organization_id", CompareOp.EQ, 9)

    def test_user_without_organization_gets_personal_scope(self):
        scope = resolve_scope(ActorIdentity(user_id=5))

        assert scope == PersonalScope(actor_id=5)
        assert scope.tenant_id is None
        assert scope.predicate() == Comparison("owner_id", CompareOp.EQ, 5)

    def test_no_actor(self):
        with pytest.raises(Unauthenticated):
            resolve_scope(None)

    def test_disabled_actor(self):
        with pytest.raises(Unauthenticated, match="disabled"):
            resolve_scope(ActorIdentity(user_id=5, is_active=False))

    def test_from_user_reads_current_membership(self):
        user = SimpleNamespace(id=5, organization_id=None, org_role=None, is_active=True)
        assert isinstance(resolve_scope(ActorIdentity.from_user(user)), PersonalScope)

        user.organization_id = 11
        user.org_role = "member"
        assert resolve_scope(ActorIdentity.from_user(user)) == OrganizationScope(actor_id=5, tenant_id=11)


class TestOwnershipValues:

    def test_personal(self):
        assert ownership_values(PersonalScope(actor_id=2)) == {"owner_id": 2, "organization_id": None}

    def test_organization(self):
        assert ownership_values(OrganizationScope(actor_id=2, tenant_id=7)) == {
            "owner_id": 2,
            "organization_id": 7,
        }
